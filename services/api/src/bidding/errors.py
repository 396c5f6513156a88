"""Typed failures of the bidding core, each carrying its HTTP status."""


class BiddingError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(BiddingError):
    status_code = 401
    default_message = "Unauthorized! Please log in."


class Forbidden(BiddingError):
    status_code = 403
    default_message = "Access denied"


class BadRequest(BiddingError):
    default_message = "All fields are required!"


class NotFound(BiddingError):
    status_code = 404
    default_message = "Not found"


class AuctionClosed(BiddingError):
    default_message = "Bidding is closed for this auction!"


class RateLimited(BiddingError):
    default_message = "Bid limit reached for this auction"


class BidTooLow(BiddingError):
    default_message = "Bid must be higher than the current highest bid!"


class ServerError(BiddingError):
    status_code = 500
    default_message = "Server error"
