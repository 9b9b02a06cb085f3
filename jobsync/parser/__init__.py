"""Pure text parsing: posting title/body/labels to structured fields."""

from jobsync.parser.email_quality import email_quality_reason, is_direct_contact_email
from jobsync.parser.job_parser import parse_job_posting

__all__ = ["email_quality_reason", "is_direct_contact_email", "parse_job_posting"]
