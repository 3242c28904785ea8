# mockexam/models/__init__.py
from mockexam.models.user import User  # noqa
from mockexam.models.exam_section import ExamSection  # noqa
from mockexam.models.assignment import ExamAssignment  # noqa
from mockexam.models.result import ExamResult  # noqa
