class DocsmithError(Exception):
    """Base class for errors raised by the documentation pipeline."""


class TemplateNotFoundError(DocsmithError):
    def __init__(self, template_id: str):
        super().__init__(f"Prompt template not found: {template_id}")
        self.template_id = template_id


class UnresolvedVariableError(DocsmithError):
    def __init__(self, template_id: str, names: list[str]):
        joined = ", ".join(names)
        super().__init__(f"Unresolved variables in {template_id}: {joined}")
        self.template_id = template_id
        self.names = names


class NoWorkspaceError(DocsmithError):
    pass


class OracleError(DocsmithError):
    """Transport, auth or empty-answer failure of the reasoning oracle."""


class ContractViolation(DocsmithError):
    """A structurally valid step output that breaks a pipeline invariant."""


class InputProcessingError(DocsmithError):
    pass


class PipelineCancelled(DocsmithError):
    def __init__(self, step: str = ""):
        super().__init__(f"Pipeline cancelled at {step}" if step else "Pipeline cancelled")
        self.step = step
