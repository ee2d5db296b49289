"""StudyLoop: quizzes, Q&A and verified video suggestions over uploaded documents."""

from __future__ import annotations

__version__ = "0.1.0"
