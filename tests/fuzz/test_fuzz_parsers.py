import random
import string

import pytest
from devbox.BUILDERS.dockerfile_linter import DockerfileLinter
from devbox.errors import ProvisionError
from devbox.PARSERS.config_parser import ConfigParser
from devbox.PARSERS.dockerfile_parser import DockerfileParser

KEYWORDS = ["FROM", "RUN", "ARG", "USER", "WORKDIR", "CMD", "ENV", "#", "\\\n", "$UID", "root", "[", "]", '"']


def random_string(length):
    return ''.join(random.choice(string.printable) for _ in range(length))


def random_dockerfile(lines):
    return "\n".join(
        " ".join(random.choice(KEYWORDS + [random_string(5)]) for _ in range(random.randint(1, 4)))
        for _ in range(lines)
    )


@pytest.fixture(autouse=True)
def seeded():
    random.seed(1234)


def test_fuzz_dockerfile_parser_and_linter():
    parser = DockerfileParser()
    linter = DockerfileLinter()
    for _ in range(200):
        content = random_string(random.randint(0, 1000)) if random.random() < 0.5 \
            else random_dockerfile(random.randint(0, 30))
        instructions = parser.parse_from_string(content)
        report = linter.lint(instructions)
        for finding in report.findings:
            assert finding.rule


def test_fuzz_config_parser():
    parser = ConfigParser(context={})
    for _ in range(200):
        content = random_string(random.randint(0, 500))
        try:
            parser.parse_from_string(content)
        except ProvisionError:
            pass
