class InputInconsistency(ValueError):
    """An assignment references a task or developer missing from the snapshot."""

    def __init__(self, task_id: int, developer_id: int, reason: str):
        self.task_id = task_id
        self.developer_id = developer_id
        self.reason = reason
        super().__init__(
            f"Assignment (task={task_id}, developer={developer_id}) is orphaned: {reason}"
        )


class EmptyDatasetError(ValueError):
    """No performance records in the requested scope."""

    def __init__(self, message: str = "No data available to export"):
        super().__init__(message)


class InsightUnavailable(ConnectionError):
    """The narrative-insight collaborator timed out or answered with garbage."""


class RenderOverflow(UserWarning):
    """A single undividable block is taller than one page."""
