# app/exceptions.py
"""Domain exceptions raised by the services and mapped to HTTP in app.main."""


class ServiceError(Exception):
    """Base for errors the HTTP layer knows how to report."""
    pass


class InvalidInput(ServiceError):
    def __init__(self, message: str):
        super().__init__(message)


class ListingNotFound(ServiceError):
    def __init__(self, listing_id: int):
        super().__init__(f"Listing {listing_id} not found")
        self.listing_id = listing_id


class InvalidTransition(ServiceError):
    def __init__(self, listing_id: int, current: str, action: str):
        super().__init__(f"Cannot {action} listing {listing_id} in status '{current}'")
        self.listing_id = listing_id
        self.current = current
        self.action = action


class CacheUnavailable(Exception):
    """The cache store could not serve a request (down, timed out, bad payload)."""
    pass
