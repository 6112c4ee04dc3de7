# SPDX-License-Identifier: MIT

"""Tree, detection and plugin views of a configuration."""

from .backend import detect_dhcp_backend
from .detect import detect_config
from .plugins import detect_plugins


def render_tree(node, max_depth=3):
    lines = []

    def walk(el, depth):
        lines.append(f"{'  ' * depth}{el.tag}")
        if depth >= max_depth:
            return
        for child in el:
            walk(child, depth + 1)

    walk(node, 0)
    return '\n'.join(lines)


def render_detection(root):
    detection = detect_config(root)
    version = detection.version
    mode, reason = detect_dhcp_backend(root)
    return '\n'.join((
        f"flavor={detection.flavor}",
        f"version={version.value} source={version.source} confidence={version.confidence}",
        f"dhcp_backend={mode} reason={reason}",
    ))


def render_plugins(root):
    lines = ['plugins']
    for state in detect_plugins(root):
        lines.append(f"- {state.plugin}: declared={str(state.declared).lower()} "
                     f"configured={str(state.configured).lower()} "
                     f"enabled={str(state.enabled).lower()}")
        lines.extend(f"    {item}" for item in state.evidence)
    return '\n'.join(lines)
