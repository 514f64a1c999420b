"""
Built-in departments and sample records so a fresh install is demoable.
"""

import logging
from typing import List

from database import NOTES, PAPERS, USERS, RecordStore
from schemas import Department

logger = logging.getLogger(__name__)

DEPARTMENTS: List[Department] = [
    Department(
        id="commerce",
        name="School of Commerce, Accounting & Finance",
        description="Business, Commerce, Accounting, Finance, and related subjects",
    ),
    Department(
        id="humanities",
        name="School of Humanities & Social Sciences",
        description="Literature, History, Psychology, Sociology, and Social Sciences",
    ),
    Department(
        id="business",
        name="School of Business & Management",
        description="MBA, Management, Marketing, HR, and Business Studies",
    ),
    Department(
        id="biological",
        name="School of Biological & Forensic Science",
        description="Biology, Biotechnology, Forensic Science, and Life Sciences",
    ),
    Department(
        id="computational",
        name="School of Computational & Physical Sciences",
        description="Computer Science, Physics, Mathematics, and Engineering",
    ),
]

SAMPLE_USERS = [
    {
        "id": "1",
        "email": "john@example.com",
        "name": "John Doe",
        "department": "computational",
        "section": "UG",
        "uploads_count": 15,
        "downloads_count": 45,
        "starred_departments": ["computational", "business"],
        "starred_papers": ["1", "3"],
        "starred_notes": ["2"],
        "created_at": "2024-01-15",
    },
    {
        "id": "2",
        "email": "jane@example.com",
        "name": "Jane Smith",
        "department": "business",
        "section": "PG",
        "uploads_count": 22,
        "downloads_count": 38,
        "starred_departments": ["business", "commerce"],
        "starred_papers": ["2"],
        "starred_notes": ["1", "3"],
        "created_at": "2024-02-10",
    },
]


def _content(kind, id, title, subject, department, section, year, uploader_id, created_at, downloads, description):
    return {
        "id": id,
        "kind": kind,
        "title": title,
        "subject": subject,
        "department": department,
        "section": section,
        "year": year,
        "tags": [section, year, subject] if year else [section, subject],
        "file_url": None,
        "uploader_id": uploader_id,
        "downloads": downloads,
        "created_at": created_at,
        "description": description,
    }


SAMPLE_PAPERS = [
    _content("paper", "1", "Data Structures and Algorithms Final Exam", "CS301", "computational", "UG", "2023",
             "1", "2024-03-15", 125, "Semester 6 final examination paper"),
    _content("paper", "2", "Strategic Management Mid-term", "MBA502", "business", "PG", "2023",
             "2", "2024-03-10", 89, "Mid-semester examination"),
    _content("paper", "3", "Financial Accounting Question Paper", "ACC201", "commerce", "UG", "2023",
             "1", "2024-03-08", 156, "Annual examination paper"),
]

SAMPLE_NOTES = [
    _content("note", "1", "Complete Notes on Machine Learning", "CS401", "computational", "UG", "",
             "2", "2024-03-12", 234, "Comprehensive notes covering all topics"),
    _content("note", "2", "Marketing Management Study Notes", "MBA301", "business", "PG", "",
             "1", "2024-03-14", 178, "Chapter-wise summary notes"),
    _content("note", "3", "Organic Chemistry Lab Manual", "BIO202", "biological", "UG", "",
             "2", "2024-03-11", 145, "Complete lab procedures and observations"),
]


def seed_store(store: RecordStore) -> List[str]:
    """Write sample records under every collection key that is absent.

    Existing keys are left alone, even when they hold an empty list.
    Returns the keys that were seeded.
    """
    seeded = []
    for key, records in ((USERS, SAMPLE_USERS), (PAPERS, SAMPLE_PAPERS), (NOTES, SAMPLE_NOTES)):
        if store.has(key):
            continue
        if store.set(key, [dict(r) for r in records]):
            seeded.append(key)
    if seeded:
        logger.info(f"Seeded sample data: {', '.join(seeded)}")
    return seeded
