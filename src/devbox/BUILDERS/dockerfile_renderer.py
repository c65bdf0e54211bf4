# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Renders a provisioning plan as a Dockerfile.
"""
import os
from itertools import groupby
from typing import List

from jinja2 import Template

from .stages import ProvisionPlan

DOCKERFILE_TEMPLATE = """\
{% for section in sections %}
{% if not loop.first %}

{% endif %}
{% for step in section %}
{% if step.comment %}
# {{ step.comment }}
{% endif %}
{% for inst in step.instructions() %}
{{ inst.render() }}
{% endfor %}
{% endfor %}
{% endfor %}
"""


class DockerfileRenderer:
    """
    Writes a ProvisionPlan out as Dockerfile text, one blank line between sections.
    """

    def __init__(self):
        self.template = Template(DOCKERFILE_TEMPLATE, trim_blocks=True, lstrip_blocks=True,
                                 keep_trailing_newline=True)

    def render(self, plan: ProvisionPlan) -> str:
        """
        Renders the plan. The output depends only on the plan, so rendering the
        same plan twice yields identical bytes.

        :param plan: The plan to render.
        :return: Dockerfile content.
        """
        sections: List[list] = [list(group) for _, group in groupby(plan.steps, key=lambda s: s.section)]
        return self.template.render(sections=sections)

    def write(self, plan: ProvisionPlan, path: str) -> str:
        """
        Renders the plan into a file, creating parent directories.

        :param plan: The plan to render.
        :param path: Destination path.
        :return: The path written.
        """
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.render(plan))
        return path
