"""ORM models. Importing this package registers every table on `Base.metadata`."""

from echolog.models.analysis import Analysis
from echolog.models.recording import Recording
from echolog.models.transcription import Transcription
from echolog.models.user import User

__all__ = ["Analysis", "Recording", "Transcription", "User"]
