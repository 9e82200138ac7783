"""OAI-PMH error taxonomy.

Protocol errors are values, not exceptions: the engine appends them to the
response envelope and always answers with HTTP 200.
"""

from dataclasses import dataclass
from enum import Enum


class OaiErrorCode(str, Enum):
    """Error codes reported in ``<error code="...">``."""

    BAD_VERB = "badVerb"
    BAD_ARGUMENT = "badArgument"
    ID_DOES_NOT_EXIST = "idDoesNotExist"
    CANNOT_DISSEMINATE_FORMAT = "cannotDisseminateFormat"
    NO_RECORDS_MATCH = "noRecordsMatch"
    NO_SET_HIERARCHY = "noSetHierarchy"
    BAD_RESUMPTION_TOKEN = "badResumptionToken"


DEFAULT_MESSAGES = {
    OaiErrorCode.BAD_VERB: (
        "Value of the verb argument is not a legal OAI-PMH verb, "
        "the verb argument is missing, or the verb argument is repeated."
    ),
    OaiErrorCode.BAD_ARGUMENT: (
        "The request includes illegal arguments, is missing required arguments, "
        "includes a repeated argument, or values for arguments have an illegal syntax."
    ),
    OaiErrorCode.ID_DOES_NOT_EXIST: "The value of the identifier argument is unknown or illegal in this repository.",
    OaiErrorCode.CANNOT_DISSEMINATE_FORMAT: (
        "The metadata format identified by the value given for the metadataPrefix argument "
        "is not supported by the item or by the repository."
    ),
    OaiErrorCode.NO_RECORDS_MATCH: "No records found.",
    OaiErrorCode.NO_SET_HIERARCHY: "The repository does not support sets.",
    OaiErrorCode.BAD_RESUMPTION_TOKEN: "The value of the resumptionToken argument is invalid or expired.",
}


@dataclass(frozen=True)
class OaiError:
    """One ``<error>`` element of a response."""

    code: OaiErrorCode
    message: str

    @classmethod
    def of(cls, code: OaiErrorCode, message: str | None = None) -> "OaiError":
        return cls(code=code, message=message or DEFAULT_MESSAGES[code])
