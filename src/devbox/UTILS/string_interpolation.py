"""
Utilities for interpolating environment variables into configuration text.
"""
import re
from typing import Mapping

from ..errors import ParameterError

# ${VAR}, ${VAR:-default}, ${VAR:+value}, ${VAR:?message}; $$ is a literal $
_PATTERN = re.compile(r'\$(?:(\$)|\{([A-Za-z_][A-Za-z0-9_]*)(?::([-+?])([^}]*))?\})')


class EnvironmentInterpolator:
    """
    Interpolates ${...} placeholders the way compose-style files do.
    """
    @staticmethod
    def interpolate(template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates environment variables in the template string.

        :param template: Text containing ${VAR} placeholders.
        :param context: The variables available for substitution.
        :return: The interpolated text.
        :raises ParameterError: If a plain ${VAR} or ${VAR:?msg} is unset.
        """
        def replace(match):
            if match.group(1):
                return '$'
            var_name, modifier, alt_value = match.group(2), match.group(3), match.group(4)
            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if modifier == '?':
                if not value:
                    raise ParameterError(alt_value or f"variable {var_name} is required")
                return value
            if value is None:
                raise ParameterError(f"variable {var_name} is not set")
            return value

        return _PATTERN.sub(replace, template)
