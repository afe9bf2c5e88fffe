# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Interactive tuning session.

Ties a working snapshot, the match pipeline and the snapshot log together
behind a small set of commands: edit parameters, request a match, undo,
redo, rewind, download and end. After every command that changes what the
user should see, subscribed listeners receive a ``SessionEvent`` carrying
the working snapshot and the undo/redo availability. The session holds no
user-interface code.
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

import pandas as pd

from sizespec.calibration.pipeline import MatchOutcome, MatchPipeline, MatchRequest, StageFailure
from sizespec.calibration.stages import Optimizer, SpectrumEngine
from sizespec.core.config.models import MatchConfig, SizespecConfig
from sizespec.core.exceptions import MatchError, SnapshotLogError, ValidationError
from sizespec.model.selectivity import set_gear_controls
from sizespec.model.snapshot import ModelSnapshot
from sizespec.state.serialization import save_snapshot
from sizespec.state.snapshot_log import SnapshotLog

logger = logging.getLogger(__name__)


class SessionEventKind(Enum):
    STARTED = 'started'
    EDITED = 'edited'
    MATCHED = 'matched'
    MATCH_FAILED = 'match_failed'
    EDITS_DISCARDED = 'edits_discarded'
    UNDONE = 'undone'
    REDONE = 'redone'
    REWOUND = 'rewound'
    ENDED = 'ended'


@dataclass(frozen=True)
class SessionEvent:
    """Notification sent to listeners after a session command."""
    kind: SessionEventKind
    snapshot: Optional[ModelSnapshot]
    cursor: int
    can_undo: bool
    can_redo: bool
    failure: Optional[StageFailure] = None


Listener = Callable[[SessionEvent], None]


class TuningSession:
    """Command interface of one calibration session.

    Args:
        engine: Size-spectrum engine used for matching and finalising.
        log: Snapshot log backing undo/redo.
        optimizer: Catch optimizer; needed only for the catch stage.
        catch: Observed catch table.
        match_config: Default stages, penalty weights and tolerances.
        length_unit: Unit of the lengths in ``catch``.
        species: Species matched when a request does not name one.
    """

    def __init__(
        self,
        engine: SpectrumEngine,
        log: SnapshotLog,
        optimizer: Optional[Optimizer] = None,
        catch: Optional[pd.DataFrame] = None,
        match_config: Optional[MatchConfig] = None,
        length_unit: str = 'cm',
        species: Optional[str] = None,
    ):
        self.engine = engine
        self.log = log
        self.match_config = match_config or MatchConfig()
        self.pipeline = MatchPipeline(
            engine,
            optimizer=optimizer,
            catch=catch,
            length_unit=length_unit,
            rtol=self.match_config.biomass_rtol,
            atol=self.match_config.biomass_atol,
        )
        self.species = species
        self._working: Optional[ModelSnapshot] = None
        self._listeners: List[Listener] = []
        self._ended = False

    @classmethod
    def from_config(
        cls,
        config: SizespecConfig,
        engine: SpectrumEngine,
        optimizer: Optional[Optimizer] = None,
        catch: Optional[pd.DataFrame] = None,
        species: Optional[str] = None,
    ) -> 'TuningSession':
        return cls(
            engine,
            SnapshotLog.from_config(config),
            optimizer=optimizer,
            catch=catch,
            match_config=config.match,
            length_unit=config.alignment.length_unit,
            species=species,
        )

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: SessionEventKind, failure: Optional[StageFailure] = None) -> SessionEvent:
        event = SessionEvent(
            kind=kind,
            snapshot=self._working,
            cursor=self.log.cursor,
            can_undo=self.can_undo,
            can_redo=self.can_redo,
            failure=failure,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:  # noqa: BLE001
                logger.error(f"Session listener {listener!r} failed on '{kind.value}': {e}", exc_info=True)
        return event

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def working(self) -> ModelSnapshot:
        """The snapshot being tuned, including unsaved edits."""
        self._require_started()
        return self._working

    @property
    def has_unsaved_changes(self) -> bool:
        return self._working is not None and self._working.changed

    @property
    def can_undo(self) -> bool:
        return self.has_unsaved_changes or self.log.can_undo

    @property
    def can_redo(self) -> bool:
        return not self.has_unsaved_changes and self.log.can_redo

    def _require_started(self) -> None:
        if self._ended:
            raise SnapshotLogError("Session has ended")
        if self._working is None:
            raise SnapshotLogError("Session has not been started; call new_session() first")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def new_session(self, snapshot: Optional[ModelSnapshot] = None) -> ModelSnapshot:
        """Start the session, recovering a persisted log if there is one."""
        if self._ended:
            raise SnapshotLogError("Session has ended")
        self._working = self.log.initialize(snapshot)
        logger.info(f"Session '{self.log.session_id}' started at position {self.log.cursor}")
        self._emit(SessionEventKind.STARTED)
        return self._working

    def select_species(self, species: str) -> None:
        self.working.species_index(species)
        self.species = species

    def edit_species(self, species: str, /, **changes) -> ModelSnapshot:
        """Change species parameters in the working snapshot without persisting."""
        current = self.working.get_species(species)
        if 'species' in changes and changes['species'] != species:
            raise ValidationError("A species cannot be renamed")
        try:
            edited = dataclasses.replace(current, **changes)
        except TypeError as e:
            raise ValidationError(f"Invalid species parameter for {species}: {e}") from e
        self._working = self.working.with_species_params(edited).mark_changed()
        self._emit(SessionEventKind.EDITED)
        return self._working

    def edit_gear(self, species: str, gear: str, **controls) -> ModelSnapshot:
        """Apply selectivity controls (see ``set_gear_controls``) to the working snapshot."""
        try:
            edited = set_gear_controls(self.working, species, gear, **controls)
        except TypeError as e:
            raise ValidationError(f"Invalid gear control for {species}/{gear}: {e}") from e
        if edited is not self._working:
            self._working = edited.mark_changed()
            self._emit(SessionEventKind.EDITED)
        return self._working

    def request_match(
        self,
        stages: Optional[Iterable[str]] = None,
        yield_lambda: Optional[float] = None,
        production_lambda: Optional[float] = None,
        species: Optional[str] = None,
    ) -> MatchOutcome:
        """Run the match pipeline on the working snapshot.

        Unspecified arguments are taken from the match configuration. On
        success the committed result becomes the working snapshot; on failure
        the working snapshot is left as it was.
        ``stages`` may also be a comma-separated string such as "growth,catch".
        """
        working = self.working
        species = species or self.species
        if species is None:
            raise ValidationError("No species selected for matching")
        if stages is None:
            stages = self.match_config.stages
        elif isinstance(stages, str):
            stages = [part.strip() for part in stages.split(',') if part.strip()]
        request = MatchRequest(
            species=species,
            stages=frozenset(stages),
            yield_lambda=self.match_config.yield_lambda if yield_lambda is None else yield_lambda,
            production_lambda=(
                self.match_config.production_lambda if production_lambda is None else production_lambda
            ),
        )

        outcome = self.pipeline.run(working, request, self.log)
        if outcome.succeeded:
            self._working = outcome.snapshot
            self._emit(SessionEventKind.MATCHED)
        else:
            self._emit(SessionEventKind.MATCH_FAILED, failure=outcome.failure)
        return outcome

    def undo(self) -> Optional[ModelSnapshot]:
        """Discard unsaved edits, or else step back one committed snapshot.

        Returns:
            The new working snapshot, or None if there was nothing to undo.
        """
        self._require_started()
        if self._working.changed:
            self._working = self.log.current()
            logger.info("Discarded unsaved changes")
            self._emit(SessionEventKind.EDITS_DISCARDED)
            return self._working

        snapshot = self.log.undo()
        if snapshot is None:
            return None
        self._working = snapshot
        self._emit(SessionEventKind.UNDONE)
        return snapshot

    def redo(self) -> Optional[ModelSnapshot]:
        """Step forward one committed snapshot; None if there is none.

        Unsaved edits block redo.
        """
        self._require_started()
        if self._working.changed:
            logger.debug("Redo unavailable while there are unsaved changes")
            return None
        snapshot = self.log.redo()
        if snapshot is None:
            return None
        self._working = snapshot
        self._emit(SessionEventKind.REDONE)
        return snapshot

    def rewind_to_start(self) -> ModelSnapshot:
        """Return to the first committed snapshot, discarding unsaved edits."""
        self._require_started()
        self._working = self.log.rewind_to_start()
        self._emit(SessionEventKind.REWOUND)
        return self._working

    def _finalised(self) -> ModelSnapshot:
        result = self.engine.finalise(self.working)
        if not isinstance(result, ModelSnapshot):
            raise MatchError(f"Engine finalise returned {type(result).__name__} instead of a ModelSnapshot")
        return result

    def download_current(self, path: Union[str, Path]) -> Path:
        """Write the finalised working snapshot to ``path``."""
        written = save_snapshot(self._finalised(), path)
        logger.info(f"Saved current parameters to {written}")
        return written

    def end_session(self) -> ModelSnapshot:
        """Delete the snapshot log and return the finalised working snapshot."""
        finalised = self._finalised()
        self.log.close()
        self._working = finalised
        self._emit(SessionEventKind.ENDED)
        self._ended = True
        logger.info(f"Session '{self.log.session_id}' ended")
        return finalised
