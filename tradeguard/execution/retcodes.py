"""
MT5 trade server return codes and their failure kind.

Values follow the MQL5 ``TRADE_RETCODE_*`` and terminal IPC error tables.
"""
from tradeguard.domain.errors import FailureKind

RETCODE_REQUOTE = 10004
RETCODE_REJECT = 10006
RETCODE_CANCEL = 10007
RETCODE_PLACED = 10008
RETCODE_DONE = 10009
RETCODE_DONE_PARTIAL = 10010
RETCODE_ERROR = 10011
RETCODE_TIMEOUT = 10012
RETCODE_INVALID = 10013
RETCODE_INVALID_VOLUME = 10014
RETCODE_INVALID_PRICE = 10015
RETCODE_INVALID_STOPS = 10016
RETCODE_TRADE_DISABLED = 10017
RETCODE_MARKET_CLOSED = 10018
RETCODE_NO_MONEY = 10019
RETCODE_PRICE_CHANGED = 10020
RETCODE_PRICE_OFF = 10021
RETCODE_INVALID_EXPIRATION = 10022
RETCODE_TOO_MANY_REQUESTS = 10024
RETCODE_NO_CHANGES = 10025
RETCODE_CONNECTION = 10031
RETCODE_POSITION_CLOSED = 10036

SUCCESS_RETCODES = frozenset({RETCODE_PLACED, RETCODE_DONE, RETCODE_DONE_PARTIAL})

TRANSIENT_RETCODES = frozenset({
    RETCODE_REQUOTE,
    RETCODE_TIMEOUT,
    RETCODE_PRICE_CHANGED,
    RETCODE_PRICE_OFF,
    RETCODE_TOO_MANY_REQUESTS,
    RETCODE_CONNECTION,
})

NOT_FOUND_RETCODES = frozenset({RETCODE_POSITION_CLOSED})

# terminal IPC errors reported by last_error() when order_send returns None
IPC_TRANSIENT_ERRORS = frozenset({
    -10001,  # RES_E_INTERNAL_FAIL_SEND
    -10002,  # RES_E_INTERNAL_FAIL_RECEIVE
    -10004,  # RES_E_INTERNAL_FAIL_CONNECT
    -10005,  # RES_E_INTERNAL_FAIL_TIMEOUT
    -10003,  # RES_E_INTERNAL_FAIL_INIT
})

RETCODE_DESCRIPTIONS = {
    RETCODE_REQUOTE: "Requote",
    RETCODE_REJECT: "Request rejected",
    RETCODE_CANCEL: "Request canceled by trader",
    RETCODE_PLACED: "Order placed",
    RETCODE_DONE: "Request completed",
    RETCODE_DONE_PARTIAL: "Only part of the request was completed",
    RETCODE_ERROR: "Request processing error",
    RETCODE_TIMEOUT: "Request canceled by timeout",
    RETCODE_INVALID: "Invalid request",
    RETCODE_INVALID_VOLUME: "Invalid volume in the request",
    RETCODE_INVALID_PRICE: "Invalid price in the request",
    RETCODE_INVALID_STOPS: "Invalid stops in the request",
    RETCODE_TRADE_DISABLED: "Trade is disabled",
    RETCODE_MARKET_CLOSED: "Market is closed",
    RETCODE_NO_MONEY: "There is not enough money to complete the request",
    RETCODE_PRICE_CHANGED: "Prices changed",
    RETCODE_PRICE_OFF: "There are no quotes to process the request",
    RETCODE_INVALID_EXPIRATION: "Invalid order expiration date in the request",
    RETCODE_TOO_MANY_REQUESTS: "Too frequent requests",
    RETCODE_NO_CHANGES: "No changes in request",
    RETCODE_CONNECTION: "No connection with the trade server",
    RETCODE_POSITION_CLOSED: "Position with the specified identifier has already been closed",
}


def is_success(retcode: int) -> bool:
    return int(retcode) in SUCCESS_RETCODES


def classify_retcode(retcode: int) -> FailureKind:
    retcode = int(retcode)
    if retcode in TRANSIENT_RETCODES:
        return FailureKind.TRANSIENT
    if retcode in NOT_FOUND_RETCODES:
        return FailureKind.NOT_FOUND
    return FailureKind.BUSINESS


def classify_last_error(code: int) -> FailureKind:
    return FailureKind.TRANSIENT if int(code) in IPC_TRANSIENT_ERRORS else FailureKind.BUSINESS


def describe(retcode: int) -> str:
    return RETCODE_DESCRIPTIONS.get(int(retcode), f"retcode {retcode}")
