"""
Checkpoint persistence - one ``.npz`` archive per checkpoint.

Archive layout:
    format_version     scalar int
    metadata           JSON string (config, dimensions, stats, optimizer step, ...)
    param.<name>       every network parameter and the recurrent state
    optim.<m|v>.<name> every optimizer moment buffer
    <pool>.<i>.<field> vectors of the strategy pools, e.g. pav.3.cs or
                       review.0.input; their bookkeeping lives in metadata

Each array keeps its own shape, so a reader never has to know dimensions in
advance.
"""

import json
import logging
import zipfile
from typing import Any, Dict, List, Tuple

import numpy as np

from learning.example import TrainingExample
from learning.pavlovian import Association, ConditionedStimulus, UnconditionedStimulus

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

PARAM_PREFIX = 'param.'
OPTIM_PREFIX = 'optim.'
HEADER_KEYS = ('format_version', 'metadata')


class CheckpointError(OSError):
    """Checkpoint could not be written, read or understood."""


def to_native(obj):
    """Convert numpy scalars and arrays so ``json`` can serialize them."""
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, dict):
        return {k: to_native(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_native(v) for v in obj]
    return obj


def write_checkpoint(filepath: str, metadata: Dict[str, Any],
                     params: Dict[str, np.ndarray],
                     optimizer_state: Dict[str, np.ndarray],
                     pools: Dict[str, np.ndarray] = None):
    arrays = {
        'format_version': np.array(FORMAT_VERSION),
        'metadata': np.array(json.dumps(to_native(metadata))),
    }
    arrays.update({PARAM_PREFIX + k: np.asarray(v) for k, v in params.items()})
    arrays.update({OPTIM_PREFIX + k: np.asarray(v) for k, v in optimizer_state.items()})
    arrays.update({k: np.asarray(v) for k, v in (pools or {}).items()})

    try:
        with open(filepath, 'wb') as f:
            # Encoded board positions are mostly zeros
            np.savez_compressed(f, **arrays)
    except OSError as e:
        raise CheckpointError(f"could not write checkpoint {filepath}: {e}") from e
    logger.info(f"Saved checkpoint to {filepath} ({len(params)} tensors, "
                f"{len(pools or {})} pool arrays)")


def read_checkpoint(filepath: str) -> Tuple[Dict[str, Any], Dict[str, np.ndarray],
                                            Dict[str, np.ndarray], Dict[str, np.ndarray]]:
    """Returns ``(metadata, params, optimizer_state, pools)``."""
    try:
        with open(filepath, 'rb') as f:
            data = np.load(f, allow_pickle=False)
            if not hasattr(data, 'files'):
                raise ValueError('single array, not an archive')
            with data:
                arrays = {key: data[key] for key in data.files}
    except OSError as e:
        raise CheckpointError(f"could not read checkpoint {filepath}: {e}") from e
    except (ValueError, EOFError, zipfile.BadZipFile) as e:
        raise CheckpointError(f"{filepath} is not a checkpoint archive: {e}") from e

    if any(key not in arrays for key in HEADER_KEYS):
        raise CheckpointError(f"{filepath} is missing checkpoint headers")
    version = int(arrays['format_version'])
    if version != FORMAT_VERSION:
        raise CheckpointError(
            f"{filepath} has format version {version}, expected {FORMAT_VERSION}")

    try:
        metadata = json.loads(str(arrays['metadata']))
    except ValueError as e:
        raise CheckpointError(f"{filepath} has corrupt metadata: {e}") from e

    params = {}
    optimizer_state = {}
    pools = {}
    for key, value in arrays.items():
        if key.startswith(PARAM_PREFIX):
            params[key[len(PARAM_PREFIX):]] = value
        elif key.startswith(OPTIM_PREFIX):
            optimizer_state[key[len(OPTIM_PREFIX):]] = value
        elif key not in HEADER_KEYS:
            pools[key] = value
    logger.info(f"Loaded checkpoint from {filepath} ({len(params)} tensors)")
    return metadata, params, optimizer_state, pools


# ── Strategy pools ────────────────────────────────────────────────────────

def pack_examples(prefix: str, examples: List[TrainingExample],
                  arrays: Dict[str, np.ndarray]) -> List[Dict[str, Any]]:
    """Vectors go to ``arrays`` as <prefix>.<i>.input/target; returns the bookkeeping."""
    records = []
    for i, ex in enumerate(examples):
        arrays[f'{prefix}.{i}.input'] = ex.input
        arrays[f'{prefix}.{i}.target'] = ex.target
        records.append({
            'difficulty': ex.difficulty,
            'is_correct': ex.is_correct,
            'attempts': ex.attempts,
            'correct_streak': ex.correct_streak,
            'last_reviewed': ex.last_reviewed,
            'next_review': ex.next_review,
            'metadata': ex.metadata,
        })
    return records


def unpack_examples(prefix: str, records: List[Dict[str, Any]],
                    arrays: Dict[str, np.ndarray]) -> List[TrainingExample]:
    return [
        TrainingExample(
            input=arrays[f'{prefix}.{i}.input'],
            target=arrays[f'{prefix}.{i}.target'],
            difficulty=record['difficulty'],
            is_correct=record['is_correct'],
            attempts=record['attempts'],
            correct_streak=record['correct_streak'],
            last_reviewed=record['last_reviewed'],
            next_review=record['next_review'],
            metadata=record.get('metadata', {}),
        )
        for i, record in enumerate(records)
    ]


def pack_associations(associations: List[Association],
                      arrays: Dict[str, np.ndarray]) -> List[Dict[str, Any]]:
    """CS/US vectors go to ``arrays`` as pav.<i>.cs/us; returns the rest."""
    records = []
    for i, assoc in enumerate(associations):
        arrays[f'pav.{i}.cs'] = assoc.cs.vector
        arrays[f'pav.{i}.us'] = assoc.us.vector
        records.append({
            'strength': assoc.strength,
            'learning_rate': assoc.learning_rate,
            'pairings': assoc.pairings,
            'last_pairing_time': assoc.last_pairing_time,
            'cs_intensity': assoc.cs.intensity,
            'cs_timestamp': assoc.cs.timestamp,
            'cs_occurrences': assoc.cs.occurrence_count,
            'reward': assoc.us.reward,
            'us_intensity': assoc.us.intensity,
            'us_timestamp': assoc.us.timestamp,
        })
    return records


def unpack_associations(records: List[Dict[str, Any]],
                        arrays: Dict[str, np.ndarray]) -> List[Association]:
    associations = []
    for i, record in enumerate(records):
        cs = ConditionedStimulus(arrays[f'pav.{i}.cs'], record['cs_intensity'],
                                 record['cs_timestamp'], record['cs_occurrences'])
        us = UnconditionedStimulus(arrays[f'pav.{i}.us'], record['reward'],
                                   record['us_intensity'], record['us_timestamp'])
        associations.append(Association(
            cs=cs, us=us,
            strength=record['strength'],
            learning_rate=record['learning_rate'],
            pairings=record['pairings'],
            last_pairing_time=record['last_pairing_time'],
        ))
    return associations
