import logging
import re
from urllib.parse import quote

from flask import Flask, Response, jsonify, render_template_string, request
from werkzeug.utils import secure_filename

from .bridge import Bridge
from .config import Settings
from .errors import BridgeError, InvalidInput, StreamAborted
from .resolver import Resolver

logger = logging.getLogger(__name__)

DEFAULT_EXT = "mkv"
PLACEHOLDER_NAME = "video"

# Containers the download may be muxed into
CONTAINER_MIMETYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "3gp": "video/3gpp",
    "m4a": "audio/mp4",
    "mp3": "audio/mpeg",
}
FALLBACK_MIMETYPE = "application/octet-stream"

INDEX_HTML = '''
<!DOCTYPE html>
<html>
<head>
    <title>YT-DLP Stream</title>
    <style>
        body { font-family: Arial, sans-serif; max-width: 760px; margin: 40px auto; }
        form { display: flex; gap: 10px; }
        input, button { padding: 10px; font-size: 16px; }
        input { flex-grow: 1; }
        button { background: #007bff; color: white; border: none; cursor: pointer; }
        button:disabled { background: #8ab4f8; cursor: wait; }
        #details { margin-top: 24px; }
        #details img { width: 240px; border-radius: 8px; }
        table { width: 100%; border-collapse: collapse; margin-top: 12px; }
        td, th { padding: 6px; border-bottom: 1px solid #ddd; text-align: left; }
        .error { color: #c00; }
    </style>
</head>
<body>
    <h1>YT-DLP Stream</h1>
    <p>Paste a video link to list its formats. Downloads stream straight to your browser; nothing is saved on the server.</p>
    <form id="lookup">
        <input type="text" id="url" placeholder="Video URL (e.g., https://youtube.com/watch?v=...)" required>
        <button type="submit" id="submit">Get formats</button>
    </form>
    <p id="message"></p>
    <div id="details"></div>
<script>
function formatFileSize(bytes) {
    if (!bytes) return "0 Bytes";
    const k = 1024;
    const sizes = ["Bytes", "KB", "MB", "GB", "TB"];
    const i = Math.floor(Math.log(bytes) / Math.log(k));
    return parseFloat((bytes / Math.pow(k, i)).toFixed(2)) + " " + sizes[i];
}

document.getElementById("lookup").addEventListener("submit", async (event) => {
    event.preventDefault();
    const url = document.getElementById("url").value;
    const submit = document.getElementById("submit");
    const message = document.getElementById("message");
    const details = document.getElementById("details");
    details.innerHTML = "";
    message.className = "";
    message.textContent = "Fetching details...";
    submit.disabled = true;

    let data;
    try {
        const response = await fetch("{{ url_for('video_info') }}", {
            method: "POST",
            headers: {"Content-Type": "application/json"},
            body: JSON.stringify({url}),
        });
        // Unexpected server errors come back as HTML, not JSON
        data = await response.json().catch(() => ({}));
        if (!response.ok) {
            throw new Error(data.error || "Failed to fetch video details.");
        }
    } catch (err) {
        message.className = "error";
        message.textContent = err.message || "An unknown error occurred.";
        return;
    } finally {
        submit.disabled = false;
    }
    message.textContent = "";

    const header = document.createElement("div");
    const thumb = document.createElement("img");
    thumb.src = data.thumbnailUrl;
    const title = document.createElement("h2");
    title.textContent = data.title;
    header.append(thumb, title);

    const table = document.createElement("table");
    table.innerHTML = "<tr><th>Quality</th><th>FPS</th><th>Size</th><th></th></tr>";
    // Only show formats with a known size
    for (const e of data.encodings.filter((e) => e.sizeBytesExact || e.sizeBytesApprox)) {
        const params = new URLSearchParams({url, formatId: e.encodingId, title: data.title});
        const row = table.insertRow();
        row.insertCell().textContent = e.label;
        row.insertCell().textContent = e.frameRate || "N/A";
        row.insertCell().textContent = formatFileSize(e.sizeBytesExact || e.sizeBytesApprox);
        const link = document.createElement("a");
        link.href = "{{ url_for('download') }}?" + params.toString();
        link.textContent = "Download";
        link.addEventListener("click", () => {
            message.textContent = "Download started! Check your browser downloads.";
        });
        row.insertCell().append(link);
    }
    details.append(header, table);
});
</script>
</body>
</html>
'''


def sanitize_filename(title):
    if not title:
        return PLACEHOLDER_NAME
    # Allow unicode but strip dangerous chars
    fn = secure_filename(title)
    if not fn:
        # Fallback for non-ascii titles
        fn = re.sub(r"[^\w\-_\. ]", "_", title)[:200].strip(" ._")
    return fn or PLACEHOLDER_NAME


def attachment_headers(ext=DEFAULT_EXT, title=None):
    """Content type and disposition for a streamed download."""
    ext = (ext or DEFAULT_EXT).lower().lstrip(".")
    mimetype = CONTAINER_MIMETYPES.get(ext)
    if mimetype is None:
        mimetype = FALLBACK_MIMETYPE
        ext = ext if re.fullmatch(r"[a-z0-9]{1,8}", ext) else "bin"
    filename = f"{sanitize_filename(title)}.{ext}"
    # Modern browsers handle Content-Disposition better with UTF-8
    disposition = f"attachment; filename*=UTF-8''{quote(filename)}"
    return mimetype, {
        "Content-Disposition": disposition,
        "X-Content-Type-Options": "nosniff",
    }


def create_app(settings=None, resolver=None, bridge=None, logger=logger):
    settings = settings or Settings()
    resolver = resolver or Resolver(ytdlp_bin=settings.ytdlp_bin, logger=logger)
    bridge = bridge or Bridge(
        ytdlp_bin=settings.ytdlp_bin,
        chunk_size=settings.chunk_size,
        terminate_grace=settings.terminate_grace,
        logger=logger,
    )

    app = Flask(__name__)

    @app.errorhandler(BridgeError)
    def handle_bridge_error(error):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.message}")
        else:
            logger.info(f"{request.method} {request.path} rejected: {error.message}")
        return jsonify({"error": error.message}), error.status_code

    @app.route("/")
    def index():
        return render_template_string(INDEX_HTML)

    @app.route("/video-info", methods=["POST"])
    def video_info():
        payload = request.get_json(silent=True)
        url = payload.get("url") if isinstance(payload, dict) else None
        if not url or not isinstance(url, str):
            raise InvalidInput("URL is required")
        descriptor = resolver.resolve(url)
        return jsonify(descriptor.to_dict())

    @app.route("/download", methods=["GET"])
    def download():
        url = request.args.get("url")
        format_id = request.args.get("formatId")

        stream = bridge.open_download_stream(url, format_id)
        mimetype, headers = attachment_headers(bridge.container_ext, request.args.get("title"))

        def relay():
            # Headers are committed once the first chunk goes out; a failure
            # past that point can only cut the connection short
            try:
                for chunk in stream:
                    yield chunk
            except StreamAborted as e:
                logger.error(f"Download of {url} cut short after {stream.bytes_sent} bytes: {e}")
                raise
            finally:
                stream.close()

        response = Response(relay(), mimetype=mimetype, headers=headers)
        # Runs even when the client leaves before the first chunk
        response.call_on_close(stream.close)
        return response

    return app
