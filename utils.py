# utils.py

import os
import json

import numpy as np
import torch

def uniform_policy(legal_mask):
    """Equal probability on every legal index; all zeros if nothing is legal."""
    legal_mask = np.asarray(legal_mask, dtype=bool)
    count = legal_mask.sum()
    if count == 0:
        return np.zeros(legal_mask.shape, dtype=np.float64)
    return legal_mask / count

def _convert_to_json_serializable(obj):
    """Recursively converts objects to be JSON serializable."""
    if isinstance(obj, torch.Tensor):
        return obj.detach().cpu().numpy().tolist()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.float32, np.float64, np.int8, np.int16, np.int32, np.int64)):
        return obj.item()
    if isinstance(obj, tuple) and hasattr(obj, '_fields'): # Check for namedtuple
        return {field: _convert_to_json_serializable(getattr(obj, field)) for field in obj._fields}
    if isinstance(obj, (list, tuple)):
        return [_convert_to_json_serializable(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _convert_to_json_serializable(value) for key, value in obj.items()}
    return obj

def save_model_json(path, model, **metadata):
    """Writes `metadata` plus the model's state dict as one plain JSON document."""
    document = dict(metadata, state_dict=_convert_to_json_serializable(model.state_dict()))
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(document, f)
    return document

def load_model_json(path):
    with open(path) as f:
        return json.load(f)

def state_dict_from_json(document, model):
    """Rebuilds tensors from a `save_model_json` document, matching the dtypes of `model`."""
    current = model.state_dict()
    return {name: torch.tensor(values, dtype=current[name].dtype) for name, values in document['state_dict'].items()}
