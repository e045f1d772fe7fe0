"""Workshop portal: password-gated proxy to Azure OpenAI with a small agent loop."""

__version__ = "0.1.0"
