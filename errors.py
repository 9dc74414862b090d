# error types raised by the store, cart and auth layers
# views catch these where the call is made and flash the message to the user


class PosError(Exception):
    """Base class for every failure the app reports to a user."""

    message = 'Something went wrong.'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


# bad form input, rejected before the database is touched
class ValidationError(PosError):
    message = 'Invalid input.'


# cart refused a change (out of stock, empty cart ...)
class CartRejection(ValidationError):
    message = 'Cart update rejected.'


class StoreError(PosError):
    message = 'Database operation failed.'


# stock ran out between the cart check and the write
class InsufficientStock(StoreError):
    message = 'Insufficient stock!'

    def __init__(self, item_id, requested, message=None):
        super().__init__(message)
        self.item_id = item_id
        self.requested = requested


class CheckoutError(PosError):
    message = 'Checkout failed. Please try again.'


class AuthError(PosError):
    message = 'Login failed. Please try again.'


class InvalidCredentials(AuthError):
    message = 'Invalid email or password'


class AuthorizationError(PosError):
    message = 'You are not allowed to do that.'
