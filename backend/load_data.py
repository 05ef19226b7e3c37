"""
Data Loader Script - Loads sample_exams.json into the exam store.

Exams are authored elsewhere; this script stands in for the authoring
service during local development. It inserts every exam from the data
file in DRAFT state and prints a bearer token for each author. With an
API URL it also fetches each exam's marking summary through the API as
a smoke check.

Usage:
    python load_data.py                                   # Seed only
    python load_data.py sample_exams.json                 # Custom data file
    python load_data.py sample_exams.json http://localhost:8000   # Seed + smoke check
"""

import json
import sys
import os

import httpx

from app.auth import issue_token
from app.database import SessionLocal, create_tables
from app.logging_config import setup_logging
from app.schemas import Caller
from app.services.exam_store import ExamPreviewStore


def fetch_marking_stats(api_url: str, exam_id: str, token: str) -> dict:
    with httpx.Client(timeout=30.0) as client:
        resp = client.get(
            f"{api_url}/api/exams/{exam_id}/marking-stats",
            headers={"Authorization": f"Bearer {token}"}
        )
        resp.raise_for_status()
        return resp.json()


def main():
    setup_logging()

    data_file = sys.argv[1] if len(sys.argv) > 1 else os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "sample_exams.json")
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL")

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    with open(data_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    exams = data.get("exams", data) if isinstance(data, dict) else data
    print(f"Loaded {len(exams)} exams from {data_file}")

    create_tables()
    store = ExamPreviewStore(SessionLocal)

    for item in exams:
        author = Caller(id=item["createdBy"], role=item.get("authorRole", "teacher"))
        exam = store.create(
            title=item["title"],
            description=item.get("description", ""),
            questions=item.get("questions", []),
            created_by=author.id,
            exam_id=item.get("id")
        )
        token = issue_token(author)
        print(f"  {exam.id}  {exam.title}  ({len(exam.questions)} questions)")
        print(f"    token for {author.id}: {token}")

        if api_url:
            stats = fetch_marking_stats(api_url, exam.id, token)
            scheme = stats["markingScheme"]
            print(f"    totalPoints={scheme['totalPoints']} averagePoints={scheme['averagePoints']}")

    print("Done.")


if __name__ == "__main__":
    main()
