"""End-to-end smoke test (in-memory mode, inline ingestion, canned model reply).
Runs against the FastAPI app object directly (no network server needed).
Verifies: /health -> /user -> /documents/upload -> /documents -> /chat/sessions -> messages.

Usage:
  python backend/scripts/e2e_smoke.py
"""
from __future__ import annotations

import sys, pathlib, json, tempfile
from typing import Any

# Ensure backend root (containing `docchat`) is on sys.path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from docchat.core.config import Settings  # noqa: E402
from docchat.core.container import build_services  # noqa: E402
from docchat.main import create_app  # noqa: E402


class CannedModel:
    async def complete(self, prompt: str) -> str:
        return f"(smoke) prompt had {len(prompt)} characters"

    async def summarize(self, text: str) -> str:
        return f"(smoke) {text[:60]}"


def main() -> int:
    settings = Settings(use_in_memory=True, sync_ingest=True, local_storage_dir=tempfile.mkdtemp(), log_dir=None)
    app = create_app(services=build_services(settings, llm=CannedModel()))
    token = jwt.encode({"sub": "smoke-user", "email": "smoke@example.com", "name": "Smoke"}, "unverified", algorithm="HS256")
    headers = {"Authorization": f"Bearer {token}"}
    report: dict[str, Any] = {"steps": []}

    with TestClient(app) as client:
        r = client.get("/api/health")
        report["steps"].append("health_ok" if r.status_code == 200 else "health_fail")

        r = client.get("/api/user", headers=headers)
        report["user"] = r.json()
        report["steps"].append("user_ok" if r.status_code == 200 else "user_fail")

        content = b"Apples are nutritious fruits. Oranges are citrus. The sky appears blue due to Rayleigh scattering."
        r_up = client.post("/api/documents/upload", files={"file": ("sample.txt", content, "text/plain")}, headers=headers)
        if r_up.status_code != 200:
            print("Upload failed", r_up.status_code, r_up.text)
            return 1
        doc = r_up.json()
        report["upload"] = {k: doc[k] for k in ("id", "processing_status", "storage_path")}
        report["steps"].append("upload_ok" if doc["processing_status"] == "completed" else "upload_fail")

        r_docs = client.get("/api/documents", headers=headers)
        report["steps"].append("documents_ok" if r_docs.status_code == 200 else "documents_fail")

        r_sess = client.post("/api/chat/sessions", json={"document_id": doc["id"]}, headers=headers)
        report["steps"].append("session_ok" if r_sess.status_code == 200 else "session_fail")
        if r_sess.status_code == 200:
            sid = r_sess.json()["id"]
            r_msg = client.post(f"/api/chat/sessions/{sid}/messages", json={"content": "What color is the sky?"}, headers=headers)
            report["chat"] = r_msg.json()
            report["steps"].append("chat_ok" if r_msg.status_code == 200 else "chat_fail")

    print(json.dumps(report, indent=2, default=str)[:4000])
    success = all(s.endswith("_ok") for s in report["steps"])
    return 0 if success else 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
