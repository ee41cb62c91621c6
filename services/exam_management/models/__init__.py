from .exams import Exam, ExamClass, ExamSubjectSetting, ExamPaper
from .results import ExamResult, PaperResult
from .grading import GradingSystem, GradeBand
from .assignments import SubjectTeacherStream
