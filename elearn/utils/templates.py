"""
Email templates

Templates live in elearn/templates and are rendered with Jinja2.
BASE_URL is always available to every template.
"""

from jinja2 import Environment, PackageLoader, select_autoescape

from elearn.core import config

_env = Environment(
    loader=PackageLoader("elearn", "templates"),
    autoescape=select_autoescape(["html"]),
)


def get_template(file_name: str, **placeholders) -> str:
    template = _env.get_template(file_name)
    return template.render(BASE_URL=config.BASE_URL, **placeholders)
