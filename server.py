from __future__ import annotations

import asyncio
import json
import os
import re
import traceback
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from reverser.errors import DecodeError
from reverser.pipeline import probe, reverse_gif

# Load .env early so worker threads see the same settings
load_dotenv(override=False)

_JOB_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


app = FastAPI(title="GIF Reverser API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _work_root() -> Path:
    return Path(os.getenv("REVERSER_WORK_DIR", "data/working/web")).resolve()


def _output_dir() -> Path:
    return Path(os.getenv("REVERSER_OUTPUT_DIR", "data/output")).resolve()


def _max_upload_bytes() -> int:
    return int(float(os.getenv("REVERSER_MAX_UPLOAD_MB", "50")) * 1024 * 1024)


def _content_disposition(filename: str) -> str:
    """Inline disposition with an ASCII fallback name and the RFC 5987 UTF-8 name."""
    fallback = "".join(c for c in filename if c.isascii() and c.isprintable() and c not in '"\\')
    return f"inline; filename=\"{fallback or 'reversed.gif'}\"; filename*=UTF-8''{quote(filename)}"


def _job_dir(job_id: str) -> Path:
    if not _JOB_ID.match(job_id):
        raise HTTPException(status_code=400, detail="Invalid job id")
    return _work_root() / job_id


class JobRecord:
    """Progress log and status document for one reversal job."""

    def __init__(self, work_dir: Path, job_id: str, name: str) -> None:
        work_dir.mkdir(parents=True, exist_ok=True)
        self._log_path = work_dir / "progress.log"
        self._status_path = work_dir / "status.json"
        self.status = {
            "id": job_id,
            "name": name,
            "state": "decoding",
            "numberOfFrames": 0,
            "currentFrame": 0,
            "error": None,
        }
        self._save()

    def _save(self) -> None:
        self._status_path.write_text(json.dumps(self.status), encoding="utf-8")

    def log(self, msg: str) -> None:
        with open(self._log_path, "a", encoding="utf-8") as lf:
            lf.write(msg.rstrip() + "\n")

    def on_register(self, stream_id: str, name: str, total_frames: int) -> None:
        self.status.update(state="encoding", numberOfFrames=total_frames)
        self._save()
        self.log(f"Registered {total_frames} frames for {name}")

    def on_progress(self, stream_id: str, frames_written: int) -> None:
        self.status["currentFrame"] = frames_written
        self._save()

    def finish(self) -> None:
        self.status["state"] = "finished"
        self._save()
        self.log("DONE")

    def fail(self, exc: Exception) -> None:
        self.status.update(state="error", error=str(exc))
        self._save()
        self.log(f"ERROR: {exc}")


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.post("/api/probe")
async def probe_upload(gif: UploadFile = File(...)):
    data = await gif.read()
    try:
        dimension = probe(data)
    except DecodeError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    return {"width": dimension.width, "height": dimension.height}


@app.get("/api/logs/{job_id}")
def stream_logs(job_id: str):
    log_file = _job_dir(job_id) / "progress.log"
    if not log_file.exists():
        raise HTTPException(status_code=404, detail="No logs yet")
    with open(log_file, "r", encoding="utf-8") as f:
        return JSONResponse({"text": f.read()})


@app.get("/api/jobs/{job_id}")
def job_status(job_id: str):
    status_file = _job_dir(job_id) / "status.json"
    if not status_file.exists():
        raise HTTPException(status_code=404, detail="Unknown job")
    return JSONResponse(json.loads(status_file.read_text(encoding="utf-8")))


@app.post("/api/reverse")
async def reverse_upload(
    gif: UploadFile = File(...),
    jobId: Optional[str] = Form(None),
):
    """Accept a GIF, reverse it in a worker thread and stream back the result."""
    job_id = jobId or uuid.uuid4().hex
    work_dir = _job_dir(job_id)

    data = await gif.read()
    if len(data) > _max_upload_bytes():
        return JSONResponse(status_code=413, content={"error": "Upload too large", "jobId": job_id})

    name = gif.filename or "upload.gif"
    job = JobRecord(work_dir, job_id, name)

    try:
        reversed_bytes = await asyncio.to_thread(
            reverse_gif, job_id, name, data, job.on_register, job.on_progress, job.log
        )
    except DecodeError as exc:
        job.fail(exc)
        return JSONResponse(status_code=400, content={"error": str(exc), "jobId": job_id})
    except Exception as exc:  # pragma: no cover
        traceback.print_exc()
        job.fail(exc)
        return JSONResponse(status_code=500, content={"error": str(exc), "jobId": job_id})

    headers = {
        "Content-Disposition": _content_disposition(f"{Path(name).stem}_reversed.gif"),
        "X-Job-Id": job_id,
    }

    output_dir = _output_dir()
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{job_id}.gif"
    output_path.write_bytes(reversed_bytes)
    job.finish()

    def iterfile(path: Path):
        with open(path, "rb") as f:
            while True:
                chunk = f.read(1024 * 1024)
                if not chunk:
                    break
                yield chunk

    return StreamingResponse(iterfile(output_path), media_type="image/gif", headers=headers)
