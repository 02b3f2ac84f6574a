class RelayError(Exception):
    """Base class for errors raised by the relay."""


class MalformedPayload(RelayError):
    """Inbound body or query does not have the expected shape. Maps to 400."""


class VerificationFailed(RelayError):
    """Subscription handshake rejected. Maps to 403; the reason stays in the logs."""


class UpstreamUnavailable(RelayError):
    """The datastore could not answer a read. Maps to 500."""


class DownstreamActionFailed(RelayError):
    """A routed sync action failed after the event was acknowledged. Logged only."""

    def __init__(self, action: str, object_id: int, cause: BaseException):
        super().__init__(f"{action} for activity {object_id} failed: {cause}")
        self.action = action
        self.object_id = object_id
        self.cause = cause


class StravaError(RelayError):
    """A call to the Strava API failed."""


class DatastoreError(RelayError):
    """A call to the Supabase REST interface failed."""
