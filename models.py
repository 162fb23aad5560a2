"""Data models for Anthill Pro workflow migration."""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from exceptions import GraphLayoutError


class MigrationStatus(Enum):
    """Lifecycle states of a Migration."""
    NEED_SETUP = 0
    READY = 1
    RUNNING = 2
    ERROR = 3
    SUCCESS = 4
    CLOSED = -1

    @property
    def is_terminal(self) -> bool:
        """Whether the migration has finished, one way or another."""
        return self in (MigrationStatus.SUCCESS, MigrationStatus.ERROR, MigrationStatus.CLOSED)


@dataclass
class StepConfig:
    """A single step configuration inside an Anthill job."""

    id: int
    name: str
    kind: str  # native step class name, e.g. com.urbancode.anthill3.domain.builder.ant.AntBuildStepConfig
    active: bool = True
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize step to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'kind': self.kind,
            'active': self.active,
            'properties': self.properties
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StepConfig':
        """Deserialize from dictionary."""
        return cls(
            id=data['id'],
            name=data['name'],
            kind=data['kind'],
            active=data.get('active', True),
            properties=data.get('properties') or {}
        )


@dataclass
class JobNode:
    """
    A job vertex of the workflow's dependency graph.

    depth is the 1-based execution rank, height the number of table rows the
    job spans, and joining is set when the job reconverges two or more branches.
    """

    id: int
    name: str
    depth: int = 1
    height: int = 1
    joining: bool = False
    steps: List[StepConfig] = field(default_factory=list)

    def active_steps(self) -> List[StepConfig]:
        """Active step configurations in source order."""
        return [step for step in self.steps if step.active]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize job node to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'depth': self.depth,
            'height': self.height,
            'joining': self.joining,
            'steps': [step.to_dict() for step in self.steps]
        }

    def __eq__(self, other: Any) -> bool:
        """Compare job nodes by ID."""
        if not isinstance(other, JobNode):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash job node by ID."""
        return hash(self.id)


class DependencyGraph:
    """Leveled job graph: job nodes grouped by depth, in encounter order."""

    def __init__(self, nodes: Optional[List[JobNode]] = None):
        """
        Build graph from job nodes.

        Args:
            nodes: Job nodes in encounter order; depth and height must already be set

        Raises:
            GraphLayoutError: On duplicate ids, depth < 1 or height < 1
        """
        self._nodes: List[JobNode] = list(nodes or [])
        self._by_depth: Dict[int, List[JobNode]] = {}

        seen = set()
        for node in self._nodes:
            if node.id in seen:
                raise GraphLayoutError(f"Duplicate job id in graph: {node.id}")
            seen.add(node.id)

            if node.depth < 1:
                raise GraphLayoutError(f"Job '{node.name}' has invalid depth {node.depth}")
            if node.height < 1:
                raise GraphLayoutError(f"Job '{node.name}' has invalid height {node.height}")

            self._by_depth.setdefault(node.depth, []).append(node)

    @property
    def max_depth(self) -> int:
        """Deepest rank in the graph, 0 when empty."""
        return max(self._by_depth) if self._by_depth else 0

    def nodes_at_depth(self, depth: int) -> List[JobNode]:
        """Ordered list of nodes at a depth (empty when there are none)."""
        return list(self._by_depth.get(depth, []))

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[JobNode]:
        return iter(self._nodes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize graph to dictionary."""
        return {'jobs': [node.to_dict() for node in self._nodes]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DependencyGraph':
        """
        Deserialize graph from the server payload.

        Payload shape: ``{"jobs": [...], "edges": [[from_id, to_id], ...]}``.
        When any job omits ``depth`` the depths are derived from the edges as the
        longest path from a root; ``joining`` defaults to in-degree >= 2.

        Raises:
            GraphLayoutError: On unknown edge endpoints or cycles
        """
        jobs_data = data.get('jobs', [])
        edges = [tuple(edge) for edge in data.get('edges', [])]

        ids = [job['id'] for job in jobs_data]
        id_set = set(ids)
        if len(id_set) != len(ids):
            dupes = sorted({str(job_id) for job_id in ids if ids.count(job_id) > 1})
            raise GraphLayoutError(f"Duplicate job ids in graph: {dupes}")

        parents: Dict[Any, List[Any]] = {job_id: [] for job_id in ids}
        for source, target in edges:
            if source not in id_set or target not in id_set:
                raise GraphLayoutError(f"Edge references unknown job: {source} -> {target}")
            parents[target].append(source)

        derived_depths: Dict[Any, int] = {}
        if any('depth' not in job for job in jobs_data):
            derived_depths = _longest_path_depths(ids, edges)

        nodes = []
        for job in jobs_data:
            nodes.append(JobNode(
                id=job['id'],
                name=job['name'],
                depth=job['depth'] if 'depth' in job else derived_depths[job['id']],
                height=job.get('height', 1),
                joining=job['joining'] if 'joining' in job else len(set(parents[job['id']])) >= 2,
                steps=[StepConfig.from_dict(step) for step in job.get('steps', [])]
            ))

        return cls(nodes)


def _longest_path_depths(ids: List[Any], edges: List[tuple]) -> Dict[Any, int]:
    """Depth of every job as 1 + the longest path from any root (Kahn's algorithm)."""
    children: Dict[Any, List[Any]] = {job_id: [] for job_id in ids}
    indeg: Dict[Any, int] = {job_id: 0 for job_id in ids}
    for source, target in edges:
        children[source].append(target)
        indeg[target] += 1

    depths = {job_id: 1 for job_id in ids}
    queue = deque(job_id for job_id in ids if indeg[job_id] == 0)
    processed = 0

    while queue:
        node = queue.popleft()
        processed += 1
        for child in children[node]:
            depths[child] = max(depths[child], depths[node] + 1)
            indeg[child] -= 1
            if indeg[child] == 0:
                queue.append(child)

    if processed != len(ids):
        stuck = sorted(str(job_id) for job_id, d in indeg.items() if d > 0)
        raise GraphLayoutError(f"Job graph has a cycle. Stuck jobs: {stuck}")

    return depths


@dataclass
class WorkflowDefinition:
    """The job configuration of a workflow."""

    graph: DependencyGraph = field(default_factory=DependencyGraph)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize definition to dictionary."""
        return self.graph.to_dict()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowDefinition':
        """Deserialize from dictionary."""
        return cls(graph=DependencyGraph.from_dict(data))


@dataclass
class Workflow:
    """An originating Anthill workflow and its definition."""

    id: int
    name: str
    project_name: Optional[str] = None
    definition: Optional[WorkflowDefinition] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize workflow to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'project_name': self.project_name,
            'definition': self.definition.to_dict() if self.definition else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Workflow':
        """Deserialize from dictionary."""
        definition_data = data.get('definition')
        project = data.get('project') or {}
        return cls(
            id=data['id'],
            name=data['name'],
            project_name=project.get('name', data.get('project_name')),
            definition=WorkflowDefinition.from_dict(definition_data) if definition_data is not None else None
        )


@dataclass
class ProjectSummary:
    """A project and its originating workflows (name -> id)."""

    id: int
    name: str
    workflows: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectSummary':
        """Deserialize from dictionary."""
        workflows = {}
        for workflow in data.get('workflows', []):
            workflows[workflow['name']] = workflow['id']
        return cls(id=data['id'], name=data['name'], workflows=workflows)


@dataclass
class ProgressCounter:
    """Completed vs total job count, reported as a percentage."""

    total: int = 0
    completed: int = 0

    def percent(self, terminal: bool = False) -> int:
        """
        Percent done.

        Terminal runs report 100. A running migration never reports more than
        99, so 100 always means the engine has stopped.
        """
        if terminal:
            return 100

        if self.total == 0:
            return 0

        # half-up rounding
        value = int(self.completed * 100 / self.total + 0.5)
        return 99 if value >= 100 else value


__all__ = [
    'MigrationStatus',
    'StepConfig',
    'JobNode',
    'DependencyGraph',
    'WorkflowDefinition',
    'Workflow',
    'ProjectSummary',
    'ProgressCounter'
]
