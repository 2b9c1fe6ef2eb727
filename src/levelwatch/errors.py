"""Exception types shared across services."""


class LevelwatchError(Exception):
    """Base class for all levelwatch errors."""


class ConfigurationError(LevelwatchError):
    """Required configuration is missing; the job must not start."""


class ProviderError(LevelwatchError):
    """A single price provider could not return a usable quote."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class PriceUnavailableError(LevelwatchError):
    """Every provider in the chain failed."""

    def __init__(self, symbol: str, failures: list[ProviderError]):
        detail = "; ".join(str(f) for f in failures) or "no providers attempted"
        super().__init__(f"No price for {symbol}: {detail}")
        self.symbol = symbol
        self.failures = failures


class PublishRejectedError(LevelwatchError):
    """A report failed the publish gate and was not published."""

    def __init__(self, warnings: list[str], threshold: int, problems: list[str] = None):
        self.warnings = warnings
        self.threshold = threshold
        self.problems = problems or []
        if self.problems:
            message = f"Report is unfit to monitor: {'; '.join(self.problems)}"
        else:
            message = f"Report has {len(warnings)} parse warnings (threshold {threshold})"
        super().__init__(f"{message}; use --force to publish anyway")
