class FactotumError(Exception):
    pass


class WorkflowValidationError(FactotumError):
    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Workflow validation failed: {', '.join(self.errors)}")


class EndpointConflictError(WorkflowValidationError):
    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(f"A workflow with endpoint '{endpoint}' already exists")


class NotFoundError(FactotumError, LookupError):
    pass


class StepExecutionError(FactotumError):
    pass


class ParameterError(StepExecutionError):
    pass


class UnsupportedStepKindError(StepExecutionError):
    pass


class HttpStatusError(StepExecutionError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP request failed with status code {status_code}. Response: {body}")


class ProcessExitError(StepExecutionError):
    def __init__(self, exit_code: int, stdout: str, stderr: str):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Shell command failed with exit code {exit_code}: {stderr.strip()}")


class StepTimeoutError(StepExecutionError):
    """A leaf action ran past its own ``run_seconds`` budget."""


class ExecutionCancelledError(FactotumError):
    """The cancellation scope of the run was triggered."""
