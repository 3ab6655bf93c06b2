"""
Per-repository settings.

The configuration file keeps the camelCase keys of the original JSON
format, for example::

    {
        "secret": "...",
        "repositories": {
            "org/repo": {
                "gitHubToken": "...",
                "maxDaysSinceUpdate": 30,
                "thirdPartyFolders": "ThirdParty/,Source/ThirdParty/",
                "unitTestPath": "Specs/"
            }
        }
    }

YAML files with the same structure are accepted as well.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from concierge import templates
from concierge.errors import ConfigurationError
from concierge.settings import BOT_NAME, DEFAULT_MAX_DAYS_SINCE_UPDATE


COMMENT_FETCH_ALL = "all"
COMMENT_FETCH_LAST = "last"

# config key -> template name
TEMPLATE_KEYS = {
    "stalePullRequestTemplate": templates.STALE_PULL_REQUEST,
    "issueClosedTemplate": templates.ISSUE_CLOSED,
    "pullRequestOpenedTemplate": templates.PULL_REQUEST_OPENED,
    "signatureTemplate": templates.SIGNATURE,
}


def parse_boolean(value: Any) -> bool:
    """
    None, 0, "0", False and "false" are false; 1, "1", True and "true" are
    true. Anything else is a configuration error.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value

    text = str(value).strip().lower()
    if text in ("1", "true"):
        return True
    if text in ("0", "false"):
        return False

    raise ConfigurationError(f"Invalid boolean configuration option: {value!r}")


def normalize_third_party_folders(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()

    if isinstance(value, str):
        folders = [part.strip() for part in value.split(",") if part.strip()]
    else:
        folders = [str(part) for part in value]

    normalized = []
    for folder in folders:
        if folder.startswith("/"):
            folder = folder[1:]
        if not folder.endswith("/"):
            folder = f"{folder}/"
        normalized.append(folder)

    return tuple(normalized)


@dataclass(frozen=True)
class RepositorySettings:
    name: str
    github_token: str
    max_days_since_update: int = DEFAULT_MAX_DAYS_SINCE_UPDATE
    templates: Mapping[str, str] = field(
        default_factory=lambda: dict(templates.DEFAULT_TEMPLATES)
    )
    third_party_folders: Tuple[str, ...] = ()
    contributors_path: Optional[str] = None
    contributors_from_github: bool = False
    unit_test_path: Optional[str] = None
    bump_stale_pull_requests: bool = True
    stale_base_branch: Optional[str] = None
    comment_fetch: str = COMMENT_FETCH_ALL
    skip_if_already_bumped: bool = False

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "User-Agent": BOT_NAME,
            "Authorization": f"token {self.github_token}",
            "Accept": "application/vnd.github+json",
        }

    def template(self, name: str) -> str:
        return self.templates.get(name, templates.DEFAULT_TEMPLATES[name])

    def render(self, name: str, data: Mapping[str, Any]) -> str:
        signature = self.template(templates.SIGNATURE)
        return templates.render(
            self.template(name),
            {"repository_name": self.name, "bot_name": BOT_NAME, **data},
            signature,
            name=name,
        )

    def merged_with(self, options: Mapping[str, Any]) -> "RepositorySettings":
        """
        Return a copy with `options` (config-file keys) applied on top.
        """
        changes = _options_to_fields(self.name, options, base_templates=self.templates)
        return replace(self, **changes)


def _options_to_fields(
    name: str,
    options: Mapping[str, Any],
    base_templates: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}

    if "gitHubToken" in options:
        fields["github_token"] = options["gitHubToken"]

    if options.get("maxDaysSinceUpdate") is not None:
        try:
            days = int(options["maxDaysSinceUpdate"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"repository {name} has an invalid `maxDaysSinceUpdate`"
            ) from exc
        if days < 0:
            raise ConfigurationError(
                f"repository {name} has a negative `maxDaysSinceUpdate`"
            )
        fields["max_days_since_update"] = days

    merged_templates = dict(base_templates or templates.DEFAULT_TEMPLATES)
    for key, template_name in TEMPLATE_KEYS.items():
        if options.get(key) is not None:
            source = str(options[key])
            templates.check_template(template_name, source)
            merged_templates[template_name] = source
    fields["templates"] = merged_templates

    if "thirdPartyFolders" in options:
        fields["third_party_folders"] = normalize_third_party_folders(
            options["thirdPartyFolders"]
        )

    if "contributorsPath" in options:
        fields["contributors_path"] = options["contributorsPath"] or None

    if "contributorsFromGitHub" in options:
        fields["contributors_from_github"] = parse_boolean(options["contributorsFromGitHub"])

    if "unitTestPath" in options:
        fields["unit_test_path"] = options["unitTestPath"] or None

    if "bumpStalePullRequests" in options:
        fields["bump_stale_pull_requests"] = parse_boolean(options["bumpStalePullRequests"])

    if "staleBaseBranch" in options:
        fields["stale_base_branch"] = options["staleBaseBranch"] or None

    if "commentFetch" in options:
        comment_fetch = str(options["commentFetch"]).lower()
        if comment_fetch not in (COMMENT_FETCH_ALL, COMMENT_FETCH_LAST):
            raise ConfigurationError(
                f"repository {name} has an invalid `commentFetch`: {comment_fetch}"
            )
        fields["comment_fetch"] = comment_fetch

    if "skipIfAlreadyBumped" in options:
        fields["skip_if_already_bumped"] = parse_boolean(options["skipIfAlreadyBumped"])

    return fields


def build_repository_settings(name: str, options: Mapping[str, Any]) -> RepositorySettings:
    if "/" not in name:
        raise ConfigurationError(
            f"repository {name} must be in the form {{user}}/{{repository}}"
        )

    if not isinstance(options, Mapping):
        raise ConfigurationError(f"repository {name} must map to an object")

    if not options.get("gitHubToken"):
        raise ConfigurationError(f"repository {name} must have a `gitHubToken`")

    fields = _options_to_fields(name, options)
    return RepositorySettings(name=name, **fields)


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Read the JSON or YAML configuration file.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Failed to read configuration at {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse configuration at {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration at {path} must be an object")

    return data


def load_repositories(config: Mapping[str, Any]) -> Dict[str, RepositorySettings]:
    """
    Build settings for every configured repository, keeping file order.
    """
    repositories = config.get("repositories")
    if repositories is None:
        raise ConfigurationError("`repositories` key must be defined")
    if not isinstance(repositories, Mapping) or not repositories:
        raise ConfigurationError("`repositories` must be non-empty")

    return {
        name: build_repository_settings(name, options or {})
        for name, options in repositories.items()
    }
