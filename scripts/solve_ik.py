#!/usr/bin/env python3
"""
IK / Trajectory Solve Script
============================

Solve inverse kinematics or a waypoint trajectory for a robot described in
a YAML problem file (model, obstacles, targets, options).

Usage:
    python scripts/solve_ik.py --problem config/planar_arm.yaml
    python scripts/solve_ik.py --problem config/planar_arm.yaml --mode joint --restarts 8
    python scripts/solve_ik.py --problem config/planar_arm.yaml --single
"""

import argparse
import sys
import logging
from pathlib import Path
from typing import Dict, Any, List

# Add src directory to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / 'src'))

import numpy as np
import yaml

from kinopt import (KinematicTreeModel, Obstacle, Pose, PoseTarget, SolveOptions,
                    KinoptError, solve_ik, solve_trajectory)
from kinopt.motion_planning import JointTrajectory

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_problem(problem_path: str) -> Dict[str, Any]:
    """Load a YAML problem description."""
    try:
        with open(problem_path, 'r') as f:
            problem = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load problem from {problem_path}: {e}")
        raise

    for key in ('model', 'targets'):
        if key not in problem:
            raise KeyError(f"Problem file is missing '{key}'")
    return problem


def parse_targets(target_dicts: List[Dict[str, Any]]) -> List[PoseTarget]:
    targets = []
    for target in target_dicts:
        pose = {k: v for k, v in target.items() if k != 'link'}
        targets.append(PoseTarget.create(target['link'], pose))
    return targets


def describe(outcome) -> str:
    """One-line description of an outcome."""
    name = type(outcome).__name__
    if hasattr(outcome, 'joint_state'):
        values = np.array2string(outcome.joint_state.values, precision=4)
        violated = getattr(outcome, 'violated_terms', ())
        suffix = f", violated={list(violated)}" if violated else ""
        return f"{name}: q={values}, cost={outcome.cost:.3e}{suffix}"
    return f"{name}: {outcome.reason}"


def main():
    """Main solve function"""
    parser = argparse.ArgumentParser(description='Collision-aware IK and trajectory solving')
    parser.add_argument('--problem', type=str, default='config/planar_arm.yaml',
                        help='YAML problem file')
    parser.add_argument('--mode', type=str, default=None, choices=['sequential', 'joint'],
                        help='Trajectory mode (overrides problem options)')
    parser.add_argument('--restarts', type=int, default=None,
                        help='Number of multi-start restarts (overrides problem options)')
    parser.add_argument('--time-budget', type=float, default=None,
                        help='Wall-clock budget in seconds')
    parser.add_argument('--single', action='store_true',
                        help='Solve only the first target as a single IK problem')
    parser.add_argument('--output', type=str, default=None,
                        help='Write the solved trajectory to this YAML file')

    args = parser.parse_args()

    try:
        problem = load_problem(args.problem)
        model = KinematicTreeModel.from_dict(problem['model'])
        obstacles = [Obstacle.from_dict(o, f"obstacle_{i}") for i, o in enumerate(problem.get('obstacles', ()))]
        targets = parse_targets(problem['targets'])

        options = SolveOptions.from_dict(problem.get('options', {}))
        overrides = {}
        if args.mode:
            overrides['mode'] = args.mode
        if args.restarts:
            overrides['restart_count'] = args.restarts
        if args.time_budget:
            overrides['time_budget'] = args.time_budget
        if overrides:
            options = SolveOptions.from_dict({**options.to_dict(), **overrides})

        if args.single:
            target = targets[0]
            outcome = solve_ik(model, target, target.link, obstacles, options)
            logger.info(describe(outcome))
            if hasattr(outcome, 'joint_state'):
                achieved = outcome.joint_state.link_transforms().pose(target.link)
                position_error, angle = achieved.distance_to(Pose.from_position(target.position, target.rotation))
                logger.info(f"Pose error: position {position_error:.3e}"
                            + (f", orientation {angle:.3e} rad" if target.rotation is not None else ""))
            return 0 if outcome.feasible else 2

        outcomes = solve_trajectory(model, targets, obstacles, options)
        for i, outcome in enumerate(outcomes):
            logger.info(f"Waypoint {i}: {describe(outcome)}")

        if args.output:
            trajectory = JointTrajectory.from_outcomes(outcomes, model.dof_names())
            with open(args.output, 'w') as f:
                yaml.safe_dump(trajectory.to_dict(), f, default_flow_style=False)
            logger.info(f"Trajectory saved to {args.output}")

        return 0 if all(o.feasible for o in outcomes) else 2

    except (KinoptError, KeyError, ValueError, OSError, yaml.YAMLError) as e:
        logger.error(f"Solve failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
