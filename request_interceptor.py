"""
Route-level request policies: blocking, response delays and host overrides.

Policies are kept in registration order. Playwright runs the most recently
registered matching route first, so they are *evaluated* in reverse:

    pattern blocks -> domain blocks -> delays -> host overrides

A blocked request is aborted before any delay is applied, and a delayed
request is sent on without passing through the host override.
`plan_request` walks the same order without a browser.
"""
import re

from probe_helpers import log


ABORT = "abort"
DELAY = "delay"
OVERRIDE = "override"


class BlockPolicy:
    kind = "block"

    def __init__(self, patterns):
        self.patterns = list(patterns)
        try:
            self.pattern = re.compile("|".join(self.patterns))
        except re.error as e:
            raise ValueError(f"Invalid {self.kind} pattern {self.patterns!r}: {e}") from e

    def matches(self, url):
        return bool(self.pattern.search(url))

    def plan(self, url):
        return {"policy": self.kind, "action": ABORT, "url": url}, True

    def handle(self, route, request, page):
        route.abort()


class BlockDomainPolicy(BlockPolicy):
    kind = "block_domains"

    def __init__(self, domains):
        self.domains = list(domains)
        super().__init__(f"//{re.escape(d)}/" for d in self.domains)


class DelayPolicy:
    kind = "delay"

    def __init__(self, regex_string, delay_ms, method="continue"):
        try:
            self.pattern = re.compile(regex_string, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid delay rule regex '{regex_string}': {e}") from e
        self.regex_string = regex_string
        self.delay_ms = delay_ms
        self.method = method

    def matches(self, url):
        return bool(self.pattern.search(url))

    def plan(self, url):
        step = {
            "policy": self.kind,
            "action": DELAY,
            "url": url,
            "delay_ms": self.delay_ms,
            "method": self.method,
        }
        return step, True

    def handle(self, route, request, page):
        url = request.url
        if self.method == "fulfill":
            log(f"Fetching {url} (matched /{self.regex_string}/i), but delaying response for {self.delay_ms}ms")
            response = route.fetch()
            page.wait_for_timeout(self.delay_ms)
            log(f"Fulfilling {url} after {self.delay_ms}ms")
            route.fulfill(response=response)
        else:
            log(f"Delaying {url} (matched /{self.regex_string}/i) request for {self.delay_ms}ms")
            page.wait_for_timeout(self.delay_ms)
            route.continue_()


class HostOverridePolicy:
    kind = "override_host"

    def __init__(self, overrides):
        self.overrides = dict(overrides)
        self.pattern = re.compile(
            "|".join(f"//({re.escape(original)})/" for original in self.overrides)
        )

    def matches(self, url):
        return bool(self.pattern.search(url))

    def rewrite(self, url):
        """Return (new_url, original_host) or (url, None) when nothing matched."""
        match = self.pattern.search(url)
        original = next((g for g in reversed(match.groups()) if g), None) if match else None
        if not original:
            return url, None
        new_url = url.replace(f"//{original}", f"//{self.overrides[original]}", 1)
        return new_url, original

    def plan(self, url):
        new_url, original = self.rewrite(url)
        if original is None:
            return None, False
        return {"policy": self.kind, "action": OVERRIDE, "url": new_url, "host": original}, False

    def handle(self, route, request, page):
        new_url, original = self.rewrite(request.url)
        if original is None:
            route.fallback()
            return
        headers = {**request.all_headers(), "X-Host": original}
        route.fallback(url=new_url, headers=headers)


# ================= POLICY LIST =================

def build_policies(config):
    """Policies in registration order for the given run config."""
    policies = []

    if config.override_host:
        policies.append(HostOverridePolicy(config.override_host))

    for regex_string, delay_ms in (config.delay or {}).items():
        policies.append(DelayPolicy(regex_string, delay_ms, config.delay_using))

    if config.block_domains:
        policies.append(BlockDomainPolicy(config.block_domains))

    if config.block:
        policies.append(BlockPolicy(config.block))

    return policies


def evaluation_order(policies):
    return list(reversed(policies))


def plan_request(policies, url):
    """
    What would happen to a request for `url`, as a list of steps in the
    order the handlers run. Stops at the first step that settles the route.
    """
    steps = []
    for policy in evaluation_order(policies):
        if not policy.matches(url):
            continue
        step, settled = policy.plan(url)
        if step is not None:
            steps.append(step)
            url = step["url"]
        if settled:
            break
    return steps


def install(page, policies):
    for policy in policies:
        if isinstance(policy, DelayPolicy):
            log(
                f"Adding a rule for delaying URLs matching '{policy.regex_string}' regex "
                f"for {policy.delay_ms} (using \"{policy.method}\" method)"
            )
        page.route(policy.pattern, make_handler(policy, page))


def make_handler(policy, page):
    def handler(route, request):
        policy.handle(route, request, page)
    return handler
