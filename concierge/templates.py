from typing import Any, Mapping

from jinja2 import Environment, TemplateError

from concierge.errors import ConfigurationError, TemplateRenderError


# Template names, also the suffix-less file names accepted from a
# repository's `.concierge/templates/` directory
STALE_PULL_REQUEST = "stale_pull_request"
ISSUE_CLOSED = "issue_closed"
PULL_REQUEST_OPENED = "pull_request_opened"
SIGNATURE = "signature"

TEMPLATE_NAMES = (STALE_PULL_REQUEST, ISSUE_CLOSED, PULL_REQUEST_OPENED, SIGNATURE)


STALE_PULL_REQUEST_TEMPLATE = """Thanks again for your contribution @{{ user_name }}!

No one has commented on this pull request in {{ threshold_days }} days. Maintainers, can you review, merge or close to keep things tidy?

I'm going to re-bump this in {{ threshold_days }} days. If you'd like me to stop, just comment with `@{{ bot_name }} stop`. If you want me to start again, just delete the comment.
"""

ISSUE_CLOSED_TEMPLATE = """Congratulations on merging your pull request, @{{ user_name }}!

Thank you for taking the time to contribute. We look forward to your next one.
"""

PULL_REQUEST_OPENED_TEMPLATE = """Thank you for the pull request, @{{ user_name }}!
{% if ask_about_contributors %}
* It looks like this is your first contribution. Please add yourself to{% if contributors_url %} [the contributors list]({{ contributors_url }}){% else %} the contributors list{% endif %} so we can thank you properly.
{% endif %}{% if ask_about_changes %}
* Please update `CHANGES.md` with a short description of this change.
{% endif %}{% if ask_about_third_party %}
* This pull request touches third-party code in {{ third_party_folders }}. Please make sure the license allows it and update any license notices.
{% endif %}{% if ask_about_tests %}
* I don't see any changes to the unit tests. Please consider adding tests for `{{ head_branch }}`.
{% endif %}
Reviewers, don't forget to make sure that:

- [ ] The change is covered by tests where possible.
- [ ] Documentation has been updated if needed.
"""

SIGNATURE_TEMPLATE = """
---

*I am a bot who helps keep {{ repository_name }} tidy. Comment `@{{ bot_name }} stop` to make me stop bumping this thread.*
"""

DEFAULT_TEMPLATES = {
    STALE_PULL_REQUEST: STALE_PULL_REQUEST_TEMPLATE,
    ISSUE_CLOSED: ISSUE_CLOSED_TEMPLATE,
    PULL_REQUEST_OPENED: PULL_REQUEST_OPENED_TEMPLATE,
    SIGNATURE: SIGNATURE_TEMPLATE,
}

_env = Environment(
    autoescape=False,
    keep_trailing_newline=True,
)


def check_template(name: str, source: str) -> None:
    """
    Raise ConfigurationError if `source` does not compile.
    """
    try:
        _env.parse(source)
    except TemplateError as exc:
        raise ConfigurationError(f"Template {name!r} is invalid: {exc}") from exc


def render(
    source: str,
    data: Mapping[str, Any],
    signature: str = "",
    name: str = "template",
) -> str:
    """
    Render a template followed by the signature.

    Unknown variables render as empty strings, like the handlebars
    templates repositories already carry.
    """
    try:
        return _env.from_string(source + signature).render(**data)
    except TemplateError as exc:
        raise TemplateRenderError(name, str(exc)) from exc
