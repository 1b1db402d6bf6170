import json
import logging
import os
import queue
import threading

from flask import Flask, request, jsonify, Response, stream_with_context

from link2ref.config import Config
from link2ref.formatters import format_output, normalize_format, output_type_for
from link2ref.resolver import parse_links

# Configure logging
log_level = logging.DEBUG if os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true') else logging.INFO
logging.basicConfig(
    level=log_level,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 1024 * 1024  # JSON bodies up to 1 MB


def get_config():
    return Config.from_env()


def links_from_request(body):
    """The ``links`` array or single ``link`` string of a request body, trimmed and non-empty."""
    if isinstance(body.get('links'), list):
        links = body['links']
    elif isinstance(body.get('link'), str):
        links = [body['link']]
    else:
        links = []
    return [str(v or '').strip() for v in links if str(v or '').strip()]


@app.route('/api/parse', methods=['POST'])
def parse():
    body = request.get_json(silent=True) or {}
    links = links_from_request(body)
    if not links:
        logger.warning("Parse request received with no links")
        return jsonify({'error': 'Provide link or links'}), 400

    config = get_config()
    logger.info(f"=== New parse request: {len(links)} link(s) ===")
    report = parse_links(links, style=body.get('format'), config=config)
    return jsonify(report)


@app.route('/api/parse/stream', methods=['POST'])
def parse_stream():
    """SSE endpoint streaming per-link progress; a client disconnect cancels the batch."""
    body = request.get_json(silent=True) or {}
    links = links_from_request(body)
    if not links:
        logger.warning("Stream request received with no links")
        return jsonify({'error': 'Provide link or links'}), 400

    config = get_config()
    style = body.get('format')
    logger.info(f"=== New streaming parse request: {len(links)} link(s) ===")

    def generate():
        """Generator for SSE events."""
        event_queue = queue.Queue()
        cancel_event = threading.Event()

        def on_progress(event_type, data):
            logger.debug(f"SSE: Queueing event {event_type}")
            event_queue.put((event_type, data))

        def run_batch():
            try:
                report = parse_links(links, style=style, config=config,
                                     on_progress=on_progress, cancel_event=cancel_event)
                event_queue.put(('complete', report))
            except Exception as e:
                logger.error(f"Error processing batch: {e}")
                event_queue.put(('error', {'message': str(e)}))
            finally:
                event_queue.put(('done', None))

        # Start the batch in a background thread
        batch_thread = threading.Thread(target=run_batch)
        batch_thread.start()

        try:
            while True:
                try:
                    event_type, data = event_queue.get(timeout=30)
                except queue.Empty:
                    # Send keepalive
                    yield b": keepalive\n\n"
                    continue

                if event_type == 'done':
                    logger.debug("SSE: Done signal received")
                    break
                elif event_type == 'error':
                    logger.debug("SSE: Sending error event")
                    yield f"event: error\ndata: {json.dumps(data)}\n\n".encode('utf-8')
                    break
                elif event_type == 'checking':
                    logger.debug(f"SSE: Sending checking event for index {data.get('index')}")
                    yield f"event: checking\ndata: {json.dumps(data)}\n\n".encode('utf-8')
                elif event_type == 'result':
                    result_data = dict(data['outcome'], index=data['index'], total=data['total'])
                    logger.debug(f"SSE: Sending result event for index {data.get('index')}")
                    yield f"event: result\ndata: {json.dumps(result_data)}\n\n".encode('utf-8')
                elif event_type == 'complete':
                    logger.debug("SSE: Sending complete event")
                    yield f"event: complete\ndata: {json.dumps(data)}\n\n".encode('utf-8')
        finally:
            # Client went away (or we finished): stop starting new links
            if batch_thread.is_alive():
                logger.info("SSE: Client disconnected, cancelling batch")
                cancel_event.set()
            batch_thread.join(timeout=1)

    response = Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache, no-store, must-revalidate',
            'Pragma': 'no-cache',
            'Expires': '0',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no',
        }
    )
    response.direct_passthrough = True
    return response


@app.route('/api/format', methods=['POST'])
def format_records():
    body = request.get_json(silent=True) or {}
    csl = body.get('csl')
    if not isinstance(csl, list) or not csl:
        return jsonify({'error': 'Provide csl array'}), 400
    if not all(isinstance(item, dict) for item in csl):
        return jsonify({'error': 'csl entries must be objects'}), 400

    config = get_config()
    style = normalize_format(body.get('format'), config)
    output = format_output(csl, style, config=config)
    return jsonify({
        'format': style,
        'output_type': output_type_for(style),
        'output': output,
    })


@app.route('/api/health', methods=['GET'])
def health():
    return jsonify({'ok': True})


if __name__ == '__main__':
    debug = os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true')
    port = int(os.environ.get('PORT', '5001'))
    logger.info(f"Starting link2ref on port {port} (debug={debug})")
    app.run(host='0.0.0.0', port=port, debug=debug)
