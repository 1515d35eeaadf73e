"""
Error taxonomy.

Domain functions raise these; main.py maps each class to its HTTP status
and a JSON body of the form {"message": ...}.
"""


class AppError(Exception):
    status_code = 500
    message = "Something went wrong!"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    message = "Not authorized"


class ForbiddenError(AppError):
    status_code = 403
    message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class InternalError(AppError):
    status_code = 500


class ServiceUnavailableError(AppError):
    status_code = 503
    message = "Database connection is not ready. Please try again later."


# ----------------------- Domain errors -----------------------
class AlreadyReviewedError(ValidationError):
    message = "Product already reviewed"


class EmptyOrderError(ValidationError):
    message = "No order items"


class CartNotFoundError(NotFoundError):
    message = "Cart not found"


class CartItemNotFoundError(NotFoundError):
    message = "Item not found in cart"
