"""
Brainwriting – SQLAlchemy ORM models package.

Imports all model classes so the app and metadata.create_all can discover
them through a single ``import brainwriting.models``.
"""

from brainwriting.models.board import Board, BoardMode          # noqa: F401
from brainwriting.models.participant import Participant         # noqa: F401
from brainwriting.models.sheet import Sheet                     # noqa: F401
from brainwriting.models.contribution import Contribution       # noqa: F401
