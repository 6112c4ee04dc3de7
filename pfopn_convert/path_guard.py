# SPDX-License-Identifier: MIT

"""Refuse to write the output over one of the inputs."""

import os

from .errors import OverwriteRefused


def _normalize(path):
    if os.path.exists(path):
        return os.path.realpath(path)
    return os.path.join(os.getcwd(), path)


def ensure_output_not_same(output, inputs):
    out_norm = _normalize(output)
    for path in inputs:
        if _normalize(path) == out_norm:
            raise OverwriteRefused(
                f"refusing to overwrite source file: output {output} matches input {path}")
