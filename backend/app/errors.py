"""
Error taxonomy for the exam preview workflow.

Every failure the service can report is a PreviewError subclass carrying
a stable machine-readable ``code`` and the HTTP status it maps to. Routes
never build HTTPExceptions for these; the handler registered in main.py
renders them.
"""


class PreviewError(Exception):
    """Base class for all exam preview errors."""
    code = "preview_error"
    status_code = 500

    def __init__(self, detail: str = None):
        self.detail = detail or self.__class__.__doc__.strip()
        super().__init__(self.detail)


class ExamNotFound(PreviewError):
    """Exam not found."""
    code = "not_found"
    status_code = 404

    def __init__(self, exam_id: str):
        self.exam_id = exam_id
        super().__init__("Exam {} not found".format(exam_id))


class QuestionIndexOutOfRange(PreviewError):
    """Question index out of range."""
    code = "index_out_of_range"
    status_code = 404

    def __init__(self, question_index: int, question_count: int):
        self.question_index = question_index
        self.question_count = question_count
        super().__init__("Question index {} is out of range (exam has {} questions)".format(
            question_index, question_count))


class Forbidden(PreviewError):
    """You can only act on your own exams."""
    code = "forbidden"
    status_code = 403


class InvalidTransition(PreviewError):
    """Invalid exam state transition."""
    code = "invalid_transition"
    status_code = 409

    def __init__(self, current_state, target_state, detail: str = None):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(detail or "Cannot move exam from {} to {}".format(
            current_state.value, target_state.value))


class ExamLocked(PreviewError):
    """Cannot modify a finalized exam."""
    code = "locked"
    status_code = 409


class InvalidArgument(PreviewError):
    """Invalid argument."""
    code = "invalid_argument"
    status_code = 400


class StoreUnavailable(PreviewError):
    """Exam store is temporarily unavailable."""
    code = "store_unavailable"
    status_code = 503
