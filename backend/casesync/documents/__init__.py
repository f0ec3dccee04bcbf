"""PDF summaries written alongside the mirrored case files."""

from casesync.documents.case_pdf import generate_case_pdf, generate_comments_pdf

__all__ = ["generate_case_pdf", "generate_comments_pdf"]
