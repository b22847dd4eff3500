"""
Flask web application for the universal downloader.

Exposes the crawl drivers and their progress as a small JSON API.
"""

from concurrent.futures import TimeoutError as FutureTimeout

from flask import Flask, Response, jsonify, request

from ..crawler import CrawlOptions, CrawlService
from ..crawler.store import rows_to_csv
from ..utils.constants import DEFAULT_FOLDER
from ..utils.log import get_logger


def create_app(service: CrawlService):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.service = service
    logger = get_logger("web")

    def busy():
        return jsonify({'ok': False, 'error': 'A run is already active'}), 409

    @app.route('/api/crawl', methods=['POST'])
    def start_site_crawl():
        """Start a site crawl in the background."""
        if app.service.running:
            return busy()
        try:
            options = CrawlOptions.from_dict(request.get_json(silent=True))
            app.service.start_site_crawl(options)
        except ValueError as e:
            return jsonify({'ok': False, 'error': str(e)}), 400

        return jsonify({'ok': True})

    @app.route('/api/scan', methods=['POST'])
    def scan_single_page():
        """Scan one page and record its matching files."""
        if app.service.running:
            return busy()
        try:
            options = CrawlOptions.from_dict(request.get_json(silent=True))
            added = app.service.scan_single_page(options)
        except ValueError as e:
            return jsonify({'ok': False, 'error': str(e)}), 400
        except FutureTimeout:
            logger.warning("Single page scan did not finish in time")
            return jsonify({'ok': False, 'error': 'Scan timed out'}), 504

        state = app.service.get_state()
        return jsonify({
            'ok': state.failed_count == 0,
            'added': added,
            'state': state.to_dict()
        })

    @app.route('/api/download-scanned', methods=['POST'])
    def download_scanned():
        """Start downloading the scanned files in the background."""
        if app.service.running:
            return busy()
        data = request.get_json(silent=True) or {}
        folder = data.get('folder') or DEFAULT_FOLDER
        force = bool(data.get('forceDownload'))

        app.service.download_scanned(folder, force)
        return jsonify({'ok': True})

    @app.route('/api/stop', methods=['POST'])
    def stop():
        """Ask the active run to stop."""
        app.service.stop()
        return jsonify({'ok': True})

    @app.route('/api/state')
    def get_state():
        """Get the current run state."""
        return jsonify({'ok': True, 'state': app.service.get_state().to_dict()})

    @app.route('/api/rows')
    def get_rows():
        """List all result rows."""
        rows = [r.to_dict() for r in app.service.get_rows()]
        return jsonify({'ok': True, 'rows': rows})

    @app.route('/api/rows.csv')
    def export_csv():
        """Download the result rows as CSV."""
        csv_text = rows_to_csv(app.service.get_rows())
        return Response(
            csv_text,
            mimetype='text/csv',
            headers={'Content-Disposition': 'attachment; filename=results.csv'}
        )

    @app.route('/api/clear', methods=['POST'])
    def clear_results():
        """Clear result rows and scanned files."""
        if app.service.running:
            return busy()
        app.service.clear_results()
        return jsonify({'ok': True})

    @app.route('/api/options')
    def get_options():
        """Get the options of the last site crawl."""
        return jsonify({'ok': True, 'options': app.service.get_options()})

    return app


def run_app(service: CrawlService, host: str = '127.0.0.1', port: int = 5000, debug: bool = False):
    """Run the Flask web application."""
    app = create_app(service)
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False)
    finally:
        service.shutdown()
