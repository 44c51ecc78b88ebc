class CoverageError(Exception):
    pass


class SourceResolutionError(CoverageError):
    '''
    Raised by the resolver helpers when a script origin cannot be mapped to
    readable sources. Never escapes SourceResolver.resolve().
    '''
    pass


class InvalidCoverageError(CoverageError):
    pass


class BackendCoverageMissingError(CoverageError):
    '''
    The run declared backend coverage mandatory and an endpoint did not
    deliver any. This is the only error allowed to reach the test runner.
    '''
    def __init__(self, url: str, reason: str = "no coverage field in response"):
        self.url = url
        self.reason = reason
        super().__init__(f"Expected to collect backend code coverage from {url} ({reason})")


class InvalidStateTransitionError(CoverageError):
    def __init__(self, signal: str, state):
        self.signal = signal
        self.state = state
        super().__init__(f"Lifecycle signal '{signal}' is not valid in state {state}")
