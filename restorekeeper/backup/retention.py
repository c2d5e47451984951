"""
Retention policy enforcement for restore points.

Controllers pick which restore points to evict:
- ControllerByCount: keep the N most recent points
- ControllerByAge: drop points older than a maximum age
- ControllerBySize: drop the oldest points until the storages fit a size budget
- HybridController: combine several controllers ('any' or 'all')

A cleaning algorithm then decides which storages of an evicted point can be
physically deleted without breaking a restore point that survives.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from .entities import RestorePoint
from .errors import ValidationError

logger = logging.getLogger(__name__)


class CleaningAlgorithm:
    """Base class for restore point cleaning strategies."""

    def clean_restore_point(
        self,
        victim: RestorePoint,
        retained: Optional[RestorePoint],
        repository,
        protected_storages: Iterable[str] = ()
    ) -> List[str]:
        """
        Release the storages of an evicted restore point.

        Args:
            victim: Restore point being evicted
            retained: Oldest restore point that survives (None if none does)
            repository: Extended repository holding the storages
            protected_storages: Storage names referenced by surviving points

        Returns:
            Names of the storages that were deleted
        """
        raise NotImplementedError


class DeleteUnsharedStoragesAlgorithm(CleaningAlgorithm):
    """
    Deletes a victim's storages unless the retained point still relies on them.

    A storage is kept when a surviving point references it by name, or when
    the retained point has a storage packed from the same sources.
    """

    def clean_restore_point(self, victim, retained, repository, protected_storages=()):
        protected = set(protected_storages)
        retained_names = retained.storage_names if retained is not None else []
        protected.update(retained_names)

        to_delete = []
        for name in victim.storage_names:
            if name in protected or name in to_delete:
                continue
            if repository.storages_share_content(name, retained_names):
                continue
            if not repository.storage_exists(name):
                # Already removed while cleaning another victim
                continue
            to_delete.append(name)

        if to_delete:
            repository.delete_storages(to_delete)
        return to_delete


class RestorePointController:
    """
    Base class for retention controllers.

    Subclasses implement select_victims over restore points sorted by
    creation time (oldest first).
    """

    def __init__(self, cleaning_algorithm: CleaningAlgorithm):
        if cleaning_algorithm is None:
            raise ValidationError("Retention controller needs a cleaning algorithm")
        self.cleaning_algorithm = cleaning_algorithm

    def select_victims(self, ordered_points: List[RestorePoint], repository) -> List[RestorePoint]:
        raise NotImplementedError

    def control_restore_points(
        self,
        restore_points: Iterable[RestorePoint],
        repository,
        log=None,
        on_cleaned: Optional[Callable[[RestorePoint], Any]] = None
    ) -> List[RestorePoint]:
        """
        Evict restore points according to the policy.

        Args:
            restore_points: Restore points of one backup
            repository: Extended repository holding their storages
            log: Logger receiving the summary (default: module logger)
            on_cleaned: Called with each victim right after its storages
                were cleaned, before the next victim is touched

        Returns:
            Evicted restore points, newest first (empty if none)
        """
        log = log or logger
        ordered = sorted(restore_points, key=lambda point: point.creation_time)

        victim_ids = {point.id for point in self.select_victims(ordered, repository)}
        if not victim_ids:
            return []

        survivors = [point for point in ordered if point.id not in victim_ids]
        boundary = survivors[0] if survivors else None
        protected = [name for point in survivors for name in point.storage_names]

        victims = [point for point in reversed(ordered) if point.id in victim_ids]
        info = []
        for victim in victims:
            self.cleaning_algorithm.clean_restore_point(victim, boundary, repository, protected)
            if on_cleaned is not None:
                on_cleaned(victim)
            info.append('\t' + victim.describe())

        log.info(
            f"Cleaned {len(victims)} restore points by "
            f"{type(self.cleaning_algorithm).__name__}:\n" + '\n'.join(info)
        )
        return victims


class ControllerByCount(RestorePointController):
    """Keeps the `limit` most recent restore points."""

    def __init__(self, limit: int, cleaning_algorithm: CleaningAlgorithm):
        if limit is None or limit <= 0:
            raise ValidationError("Impossible to set limit to store <= 0 points maximum")
        super().__init__(cleaning_algorithm)
        self.limit = limit

    def select_victims(self, ordered_points, repository):
        if len(ordered_points) <= self.limit:
            return []
        return ordered_points[:len(ordered_points) - self.limit]


class ControllerByAge(RestorePointController):
    """
    Evicts restore points older than max_age.

    The newest restore point is always kept, however old it is.
    """

    def __init__(
        self,
        max_age: timedelta,
        cleaning_algorithm: CleaningAlgorithm,
        now: Optional[datetime] = None
    ):
        if max_age is None or max_age <= timedelta(0):
            raise ValidationError("Maximum restore point age must be positive")
        super().__init__(cleaning_algorithm)
        self.max_age = max_age
        self.now = now

    def select_victims(self, ordered_points, repository):
        cutoff = (self.now or datetime.utcnow()) - self.max_age
        return [point for point in ordered_points[:-1] if point.creation_time < cutoff]


class ControllerBySize(RestorePointController):
    """
    Evicts the oldest restore points until their storages fit max_bytes.

    The newest restore point is always kept. The budget counts every storage
    a point references, and assumes evicting a point frees all of it. Storages
    the cleaning algorithm keeps because a surviving point shares their
    content stay on disk, so actual usage can remain above max_bytes.
    """

    def __init__(self, max_bytes: int, cleaning_algorithm: CleaningAlgorithm):
        if max_bytes is None or max_bytes <= 0:
            raise ValidationError("Size limit must be positive")
        super().__init__(cleaning_algorithm)
        self.max_bytes = max_bytes

    def select_victims(self, ordered_points, repository):
        sizes = {
            point.id: sum(repository.get_storage_size(name) for name in point.storage_names)
            for point in ordered_points
        }
        total = sum(sizes.values())

        victims = []
        for point in ordered_points[:-1]:
            if total <= self.max_bytes:
                break
            victims.append(point)
            total -= sizes[point.id]
        return victims


class HybridController(RestorePointController):
    """
    Combines several controllers.

    mode='any' evicts a point selected by at least one controller,
    mode='all' only points selected by every controller.
    """

    MODES = ('any', 'all')

    def __init__(
        self,
        controllers: List[RestorePointController],
        cleaning_algorithm: CleaningAlgorithm,
        mode: str = 'any'
    ):
        if not controllers:
            raise ValidationError("Hybrid controller needs at least one controller")
        if mode not in self.MODES:
            raise ValidationError(f"Invalid hybrid mode: {mode}. Valid options: {list(self.MODES)}")
        super().__init__(cleaning_algorithm)
        self.controllers = list(controllers)
        self.mode = mode

    def select_victims(self, ordered_points, repository):
        selections = [
            {point.id for point in controller.select_victims(ordered_points, repository)}
            for controller in self.controllers
        ]

        if self.mode == 'any':
            victim_ids = set.union(*selections)
        else:
            victim_ids = set.intersection(*selections)

        return [point for point in ordered_points if point.id in victim_ids]


def create_controller(
    policy: Dict[str, Any],
    cleaning_algorithm: Optional[CleaningAlgorithm] = None
) -> RestorePointController:
    """
    Factory function to build a controller from a stored policy.

    Args:
        policy: Policy dict, e.g. {'type': 'count', 'limit': 5},
            {'type': 'age', 'max_age_days': 30}, {'type': 'size', 'max_bytes': 1024},
            {'type': 'hybrid', 'mode': 'any', 'policies': [...]}
        cleaning_algorithm: Cleaning algorithm (default: DeleteUnsharedStoragesAlgorithm)

    Returns:
        Controller instance

    Raises:
        ValidationError: If the policy is malformed
    """
    if not isinstance(policy, dict):
        raise ValidationError("Retention policy must be an object")

    cleaning_algorithm = cleaning_algorithm or DeleteUnsharedStoragesAlgorithm()
    policy_type = policy.get('type')

    try:
        if policy_type == 'count':
            return ControllerByCount(int(policy['limit']), cleaning_algorithm)
        elif policy_type == 'age':
            return ControllerByAge(timedelta(days=float(policy['max_age_days'])), cleaning_algorithm)
        elif policy_type == 'size':
            return ControllerBySize(int(policy['max_bytes']), cleaning_algorithm)
        elif policy_type == 'hybrid':
            children = [
                create_controller(child, cleaning_algorithm)
                for child in policy.get('policies', [])
            ]
            return HybridController(children, cleaning_algorithm, policy.get('mode', 'any'))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {policy_type} retention policy: {e}")

    raise ValidationError(f"Invalid retention policy type: {policy_type}")
