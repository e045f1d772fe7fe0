"""Agent orchestration: endpoint client, tool executor, agent loop and gateways."""
