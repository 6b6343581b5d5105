"""
EduMatch API
Backend for an education marketplace: applicants explore programmes,
scholarships and research positions; institutions publish them.

Architecture:
- PostgreSQL: Structured data (users, institutions, posts, applications, notifications)
- MongoDB: Cached AI document validation results
- SQS: Notification and email queues
"""

__version__ = "1.0.0"
