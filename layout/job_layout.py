"""
Job layout builder for Anthill workflow dependency graphs.

Anthill keeps a workflow's jobs in a leveled "table" graph that allows any mix
of parallel and sequential jobs. This module turns that graph into two views:

- a flattened list of every job in depth order, which is the order jobs are
  migrated in;
- a list of parallel groups. Each group is a list of stacks, and each stack is
  a column of jobs that may run alongside the other stacks of the group.

The groups are informational: they let a target system rebuild parallel stages
but the migration itself never runs anything in parallel.
"""

import logging
from typing import Any, Dict, List, Optional

from models import DependencyGraph, JobNode

logger = logging.getLogger('anthill_migrator.layout')

# A stack slot is a job, or None as padding below a job spanning several rows.
Stack = List[Optional[JobNode]]


class ParallelGroup:
    """A fixed-width row of stacks holding jobs that can run in parallel."""

    def __init__(self, width: int):
        """
        Initialize parallel group.

        Args:
            width: Number of stacks; fixed for the life of the group
        """
        self._stacks: List[Stack] = [[] for _ in range(width)]

    @property
    def width(self) -> int:
        return len(self._stacks)

    @property
    def stacks(self) -> List[Stack]:
        return self._stacks

    def push(self, node: JobNode) -> int:
        """
        Push a job onto the emptiest stack reachable from the right.

        Stacks are scanned from the last index down; the job lands on index i
        when i is 0 or the stack to its left is strictly longer. The job is
        followed by height - 1 placeholder slots.

        Args:
            node: Job to place

        Returns:
            Index of the stack the job was placed on
        """
        for i in range(len(self._stacks) - 1, -1, -1):
            if i == 0 or len(self._stacks[i - 1]) > len(self._stacks[i]):
                self._stacks[i].append(node)
                self._stacks[i].extend([None] * (node.height - 1))
                logger.debug(f"Pushed job '{node.name}' onto stack {i} (height {node.height})")
                return i

        raise ValueError("Cannot push onto a parallel group of width 0")

    def real_slots(self) -> int:
        """Count of slots holding a job rather than padding."""
        return sum(1 for stack in self._stacks for slot in stack if slot is not None)

    def to_dict(self) -> List[List[Optional[str]]]:
        """Render stacks as job names with None placeholders."""
        return [[slot.name if slot is not None else None for slot in stack] for stack in self._stacks]


class JobLayout:
    """Result of laying out a dependency graph."""

    def __init__(self, groups: Optional[List[ParallelGroup]] = None, all_jobs: Optional[List[JobNode]] = None):
        self.groups: List[ParallelGroup] = groups or []
        self.all_jobs: List[JobNode] = all_jobs or []

    def __len__(self) -> int:
        return len(self.all_jobs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize layout to dictionary."""
        return {
            'jobs': [job.name for job in self.all_jobs],
            'groups': [group.to_dict() for group in self.groups]
        }


def build_layout(graph: Optional[DependencyGraph]) -> JobLayout:
    """
    Lay out a dependency graph into parallel groups and a flattened job order.

    A new group opens when none is open, when the first job at a depth is a
    joining job, or when a depth holds more jobs than the open group is wide.
    Depths without jobs are skipped.

    Args:
        graph: Leveled job graph, or None for a workflow without jobs

    Returns:
        JobLayout with the groups and the flattened execution order
    """
    layout = JobLayout()

    if graph is None:
        logger.debug("No dependency graph; empty job layout")
        return layout

    logger.debug(f"Building job layout, max depth {graph.max_depth}")

    current_group: Optional[ParallelGroup] = None

    for depth in range(1, graph.max_depth + 1):
        nodes = graph.nodes_at_depth(depth)
        width = len(nodes)

        logger.debug(f"At depth {depth} found {width} jobs")

        if width == 0:
            continue

        if current_group is None:
            open_reason = "no group yet"
        elif nodes[0].joining:
            open_reason = "join"
        elif width > current_group.width:
            open_reason = f"width grew from {current_group.width} to {width}"
        else:
            open_reason = None

        if open_reason:
            if current_group is not None:
                layout.groups.append(current_group)
            current_group = ParallelGroup(width)
            logger.debug(f"Opened parallel group of width {width} ({open_reason})")

        for node in nodes:
            current_group.push(node)
            layout.all_jobs.append(node)

    if current_group is not None:
        layout.groups.append(current_group)

    logger.debug(f"Finished job layout: {len(layout.all_jobs)} jobs in {len(layout.groups)} groups")

    return layout


__all__ = ['Stack', 'ParallelGroup', 'JobLayout', 'build_layout']
