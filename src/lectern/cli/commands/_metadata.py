from __future__ import annotations

import argparse

from lectern.domain.models.document import EDUCATION_LEVELS


def add_metadata_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--title")
    parser.add_argument("--subject")
    parser.add_argument("--education-level", choices=EDUCATION_LEVELS)
    parser.add_argument("--specialization")
    parser.add_argument("--year-number", type=int)
    parser.add_argument("--edition")


def metadata_from_args(args: argparse.Namespace) -> dict[str, object]:
    return {
        "title": args.title,
        "subject": args.subject,
        "education_level": args.education_level,
        "specialization": args.specialization,
        "year_number": args.year_number,
        "edition": args.edition,
    }
