"""
Error taxonomy for rent accounting
"""


class RentApplicationError(Exception):
    """Base class for errors raised by the rent application"""


class InvalidScheduleInput(RentApplicationError, ValueError):
    """Start date is malformed or monthly rent is negative/non-finite.

    Raised before any computation; no partial schedule is ever returned.
    """


class StoreUnavailable(RentApplicationError):
    """The payment store failed a find/insert/delete call.

    Propagated unchanged to the caller. Nothing here retries: retrying a
    delete-then-insert pair without a transaction risks duplicate or missing
    records.
    """


class InvalidPaymentUpdate(RentApplicationError, ValueError):
    """Illegal status transition or partial payment amount"""


class TenancyConflict(RentApplicationError):
    """A property already has an active tenancy"""


class RecordNotFound(RentApplicationError, LookupError):
    """A property, tenant, tenancy or rent record does not exist"""
