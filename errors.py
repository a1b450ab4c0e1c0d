from typing import Optional


class ValidationError(ValueError):
    """Malformed or missing input; raised before the store is touched."""


class DuplicateExpenseNumber(ValueError):
    def __init__(self, expense_number: int) -> None:
        super().__init__(f"Expense number {expense_number} already exists")
        self.expense_number = expense_number


class NotFound(ValueError):
    pass


class StoreUnavailable(RuntimeError):
    def __init__(self, operation: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Store unavailable during {operation}")
        self.operation = operation


class AllocatorUnavailable(StoreUnavailable):
    pass
