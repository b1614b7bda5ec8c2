from __future__ import annotations

import logging
import yamale # type: ignore

from typing import Any, Dict, List, Optional

rootLogger = logging.getLogger()

def validate(schema_yaml_path: str, src_yaml_path: Optional[str] = None, src_data: Optional[Dict[str, Any]] = None) -> List[str]:
    """Validate a yaml file (or an already loaded yaml document) against a yamale schema

    Args:
        schema_yaml_path: path to schema yaml file to use for check
        src_yaml_path: path to yaml file to check (cannot be used with src_data)
        src_data: already parsed yaml document to check (cannot be used with src_yaml_path)

    Returns:
        List of mismatch messages, empty if validation was successful
    """
    if (src_yaml_path is None) == (src_data is None):
        raise ValueError("Pass either src_yaml_path= or src_data=, not both")

    schema = yamale.make_schema(schema_yaml_path)
    if src_yaml_path is not None:
        data = yamale.make_data(src_yaml_path)
    else:
        # yamale expects a list of (document, path) tuples
        data = [(src_data, None)]

    try:
        yamale.validate(schema, data)
    except yamale.YamaleError as e:
        all_errors = []
        for result in e.results:
            all_errors.extend(result.errors)
        for error in all_errors:
            rootLogger.debug(f"Schema mismatch against {schema_yaml_path}: {error}")
        return all_errors

    return []
