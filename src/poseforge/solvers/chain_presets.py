"""Common humanoid IK chains and joint limits from config.

Chains are listed in ``ik_chains.json`` as ordered candidate bone-name
sequences; the first candidate whose bones all exist in the skeleton is
used.  Names must match exactly, so a rig with an unknown naming scheme
simply gets no preset chains.  Bilateral entries use ``{side}`` (chain
names) and ``{Side}`` / ``{s}`` (bone names) templates, expanded for each
side listed in the config.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from poseforge.core.config_loader import load_config
from poseforge.core.math_utils import deg_to_rad
from poseforge.rig.skeleton import Skeleton
from poseforge.solvers.fabrik import ChainIKSolver

logger = logging.getLogger(__name__)

DEFAULT_SIDES = {
    "left": {"Side": "Left", "s": "l"},
    "right": {"Side": "Right", "s": "r"},
}


def expand_template(template: str, sides: dict[str, dict[str, str]]) -> dict[str, str]:
    """Expand *template* once per side: ``{side_key: expanded}``.

    A template without placeholders maps every side to itself.
    """
    return {
        side: template.format_map({"side": side, **tokens})
        for side, tokens in sides.items()
    }


def find_chain_candidate(skeleton: Skeleton, candidates: list[list[str]]) -> Optional[list[str]]:
    """First candidate whose bones all exist in *skeleton*."""
    for names in candidates:
        if all(skeleton.get_bone(n) is not None for n in names):
            return names
    return None


def create_preset_chains(
    solver: ChainIKSolver,
    skeleton: Skeleton,
    config: Optional[dict[str, Any]] = None,
) -> list[str]:
    """Register every preset chain the skeleton can support.

    Parameters
    ----------
    config:
        Parsed ``ik_chains.json``-style dict.  Loaded from the bundled
        config when omitted; a missing or malformed file creates nothing.

    Returns
    -------
    list[str]
        Names of the chains created.
    """
    if config is None:
        try:
            config = load_config("ik_chains.json")
        except (FileNotFoundError, ValueError) as e:
            logger.warning("IK chain presets not found, no chains created: %s", e)
            return []

    sides = config.get("sides", DEFAULT_SIDES)
    created = []
    seen: set[str] = set()
    for name_template, candidate_templates in config.get("chains", {}).items():
        for side, chain_name in expand_template(name_template, sides).items():
            # Templates without {side} expand to the same name for every side
            if chain_name in seen:
                continue
            seen.add(chain_name)
            candidates = [
                [t.format_map({"side": side, **sides[side]}) for t in names]
                for names in candidate_templates
            ]
            match = find_chain_candidate(skeleton, candidates)
            if match is None:
                logger.debug("No bones found for preset chain %r", chain_name)
                continue
            solver.create_chain(chain_name, [skeleton.get_bone(n) for n in match])
            created.append(chain_name)

    logger.info("Created %d preset IK chains: %s", len(created), ", ".join(created))
    return created


def load_rotation_limits(
    name: str = "rotation_limits.json",
    sides: Optional[dict[str, dict[str, str]]] = None,
) -> dict[str, tuple[tuple[float, float, float], tuple[float, float, float]]]:
    """Load per-bone Euler limits (returned in radians).  Empty on failure."""
    try:
        data = load_config(name)
    except (FileNotFoundError, ValueError) as e:
        logger.warning("Rotation limits config not found, constraints disabled: %s", e)
        return {}

    sides = sides or data.get("sides", DEFAULT_SIDES)
    in_degrees = data.get("units", "degrees") == "degrees"
    limits = {}
    for key, bounds in data.get("limits", {}).items():
        lo = tuple(float(v) for v in bounds.get("min", (-180.0, -180.0, -180.0)))
        hi = tuple(float(v) for v in bounds.get("max", (180.0, 180.0, 180.0)))
        if in_degrees:
            lo = tuple(deg_to_rad(v) for v in lo)
            hi = tuple(deg_to_rad(v) for v in hi)
        for bone_name in set(expand_template(key, sides).values()):
            limits[bone_name] = (lo, hi)
    return limits


def apply_rotation_limits(
    solver: ChainIKSolver,
    skeleton: Skeleton,
    limits: dict[str, tuple[tuple[float, float, float], tuple[float, float, float]]],
) -> int:
    """Register limits for the bones present in *skeleton*.  Returns the count."""
    count = 0
    for bone_name, (lo, hi) in limits.items():
        bone = skeleton.get_bone(bone_name)
        if bone is None:
            continue
        solver.set_constraint(bone, lo, hi)
        count += 1
    return count
