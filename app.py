"""
Flask web frontend for the compliance crawler.
Upload a merchant workbook (or paste website URLs), run the crawler and
download the results workbook, detailed JSONL and logs.
"""
import os
import subprocess
import sys
import uuid

from flask import Flask, flash, jsonify, redirect, render_template, request, send_file, url_for
from werkzeug.utils import secure_filename

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET_KEY", "compliance-crawler-dev-key")

# Configuration
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
UPLOAD_FOLDER = os.path.join(BASE_DIR, "uploads")
REPORTS_FOLDER = os.path.join(BASE_DIR, "reports")
ALLOWED_EXTENSIONS = {"xlsx", "csv"}

REPORT_FILES = {
    "xlsx": "{prefix}.xlsx",
    "jsonl": "{prefix}.jsonl",
    "logs": "{prefix}_logs.txt",
}

os.makedirs(UPLOAD_FOLDER, exist_ok=True)
os.makedirs(REPORTS_FOLDER, exist_ok=True)


def allowed_file(filename):
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def run_compliance_crawler(urls=None, input_file=None, output_prefix=None, static=False):
    """Run the crawler script and return the outcome."""
    if not output_prefix:
        output_prefix = f"report_{uuid.uuid4().hex[:8]}"

    output_path = os.path.join(REPORTS_FOLDER, f"{output_prefix}.xlsx")
    emails_dir = os.path.join(REPORTS_FOLDER, f"{output_prefix}_emails")

    cmd = [sys.executable, "compliance_crawler.py", "--output", output_path, "--emails-dir", emails_dir]
    if urls:
        for url in urls:
            cmd.extend(["--url", url.strip()])
    elif input_file:
        cmd.extend(["--input", input_file])
    if static:
        cmd.append("--static")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, cwd=BASE_DIR)
    except OSError as e:
        return {"success": False, "error": f"Failed to run compliance crawler: {e}"}

    if result.returncode == 0:
        return {
            "success": True,
            "output_prefix": output_prefix,
            "stdout": result.stdout,
            "stderr": result.stderr,
        }
    return {
        "success": False,
        "error": result.stderr or result.stdout,
        "stdout": result.stdout,
        "stderr": result.stderr,
    }


@app.route("/")
def index():
    return render_template("index.html")


@app.route("/check", methods=["POST"])
def check_merchants():
    urls = []
    input_file = None

    url_input = request.form.get("urls", "").strip()
    if url_input:
        urls = [u.strip() for u in url_input.split("\n") if u.strip()]

    if "file" in request.files:
        file = request.files["file"]
        if file and file.filename and allowed_file(file.filename):
            filename = secure_filename(file.filename)
            filepath = os.path.join(UPLOAD_FOLDER, f"{uuid.uuid4().hex}_{filename}")
            file.save(filepath)
            input_file = filepath

    if not urls and not input_file:
        flash("Please provide either website URLs or upload a merchant workbook.", "error")
        return redirect(url_for("index"))

    result = run_compliance_crawler(
        urls=urls, input_file=input_file, static=bool(request.form.get("static"))
    )

    if input_file and os.path.exists(input_file):
        os.remove(input_file)

    if result["success"]:
        flash("Audit completed successfully!", "success")
        return render_template("results.html", output_prefix=result["output_prefix"], stdout=result["stdout"])

    flash(f"Audit failed: {result['error']}", "error")
    return render_template(
        "results.html",
        error=result["error"],
        stdout=result.get("stdout"),
        stderr=result.get("stderr"),
    )


@app.route("/download/<output_prefix>/<file_type>")
def download_report(output_prefix, file_type):
    """Download generated reports."""
    if file_type not in REPORT_FILES:
        flash("Invalid file type requested.", "error")
        return redirect(url_for("index"))

    filename = REPORT_FILES[file_type].format(prefix=secure_filename(output_prefix))
    filepath = os.path.join(REPORTS_FOLDER, filename)

    if not os.path.exists(filepath):
        flash(f"Report file not found: {filename}", "error")
        return redirect(url_for("index"))

    return send_file(filepath, as_attachment=True, download_name=filename)


@app.route("/status/<output_prefix>")
def get_status(output_prefix):
    """Check if report files are ready."""
    prefix = secure_filename(output_prefix)
    return jsonify({
        f"{kind}_ready": os.path.exists(os.path.join(REPORTS_FOLDER, pattern.format(prefix=prefix)))
        for kind, pattern in REPORT_FILES.items()
    })


if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000)
