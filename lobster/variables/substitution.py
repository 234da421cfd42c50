"""
Template substitution implementation.
Handles ${name}, ${name.path} and bare $name.path references against a
layered variable scope.
"""

import json
import re
from typing import Any, Dict, List, Mapping, Optional

# One pass over three alternatives:
# - "$${" renders a literal "${"
# - ${name} / ${name.path}
# - bare $name.path; at least one path segment is required so plain shell
#   variables such as $HOME are never touched
TEMPLATE_PATTERN = re.compile(
    r'(?P<escaped>\$\$\{)'
    r'|\$\{(?P<braced>[^}]*)\}'
    r'|\$(?P<root>[A-Za-z_][A-Za-z0-9_-]*)(?P<path>(?:\.[A-Za-z0-9_-]+)+)'
)

_MISSING = object()


def resolve_path(obj: Any, path: List[str]) -> Any:
    """Follow path segments through mappings and lists, returning _MISSING on any miss."""
    current = obj
    for part in path:
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def render_value(value: Any) -> str:
    """Textual form of a resolved value."""
    if value is None or value is _MISSING:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False)


def lookup(var_path: str, scope: Mapping[str, Any]) -> Any:
    """Resolve a dotted reference like 'data.stdout' against the scope."""
    parts = var_path.strip().split('.')
    if not parts or not parts[0]:
        return _MISSING
    return resolve_path(scope, parts)


def resolve_template(template: str, scope: Mapping[str, Any]) -> str:
    """
    Replace every reference in the template with its rendered value.

    Unresolvable references render as the empty string. Bare references are
    only resolved when their root names a mapping in the scope; otherwise the
    text is left as-is.
    """
    if not template:
        return template or ''

    def replace(match):
        if match.group('escaped'):
            return '${'
        if match.group('braced') is not None:
            return render_value(lookup(match.group('braced'), scope))

        root = match.group('root')
        if not isinstance(scope.get(root), Mapping):
            return match.group(0)
        path = match.group('path').split('.')[1:]
        return render_value(resolve_path(scope[root], path))

    return TEMPLATE_PATTERN.sub(replace, template)


class VariableSubstitutor:
    """
    Builds variable scopes and substitutes templates inside strings.

    Scope layers, lowest to highest precedence:
    - args: declared defaults overlaid with caller-supplied values
    - env: the composed environment of the step
    - steps: recorded outputs of completed steps, keyed by step id
    """

    def substitute(self, template: str, variables: Mapping[str, Any]) -> str:
        """Render one template string against a variable scope."""
        return resolve_template(template, variables)

    def substitute_optional(self, value: Optional[str], variables: Mapping[str, Any]) -> Optional[str]:
        if value is None:
            return None
        return self.substitute(value, variables)

    def build_variables(
        self,
        args: Optional[Mapping[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
        step_outputs: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Build a variables dictionary from the scope layers.

        Args:
            args: Argument values
            env: Composed environment
            step_outputs: Outputs of completed steps keyed by step id

        Returns:
            Combined variables dictionary
        """
        variables: Dict[str, Any] = {}

        if args:
            variables.update(args)

        if env:
            variables.update(env)

        if step_outputs:
            variables.update(step_outputs)

        return variables
