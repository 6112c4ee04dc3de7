# SPDX-License-Identifier: MIT

"""Transform passes applied in order by :mod:`pfopn_convert.pipeline`.

Every pass takes ``(out, source, baseline, run)`` and edits ``out`` in place.
"""
