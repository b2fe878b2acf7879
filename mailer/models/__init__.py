# Shared Models
"""
Pydantic models for queue records and email requests.
"""

from mailer.models.queue import EmailRequest, QueueRecord

__all__ = [
    "EmailRequest",
    "QueueRecord",
]
