"""
Command-line interface for PromptSheet Batch Manager.

Command Categories:
    Configuration:
        - setup: Configure a new run (a workbook folder) or update one
        - list-runs: Show available runs
        - unregister-run: Remove run configuration
        - init-workbook: Create the template sheets

    Synchronous mode:
        - run: Run active prompts row by row

    Batch mode:
        - estimate: Estimate the cost of the next batch
        - create-batch: Submit the next BATCH_SIZE unprocessed rows
        - check-status: Refresh the Batch Status sheet
        - process-next: Apply the first completed batch
        - process: Apply a given batch
        - list-batches: Show the Batch Status sheet
        - cancel: Cancel a batch job

Environment Requirements:
    - OPENAI_API_KEY (for OpenAI API), unless API_KEY is set in the Config sheet
    - AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT (for Azure OpenAI)

Example Workflow:
    # 1. Set up the run and its workbook
    $ psbm -r sheet1 setup --workbook ./sheet1/
    $ psbm -r sheet1 init-workbook

    # 2. Fill Data.csv and Prompts.csv, then estimate the cost
    $ psbm -r sheet1 estimate -m gpt-4o-mini -m gpt-4o

    # 3. Submit, then apply results once the batch completed
    $ psbm -r sheet1 create-batch
    $ psbm -r sheet1 check-status
    $ psbm -r sheet1 process-next

The CLI provides help for each command:
    $ psbm --help
    $ psbm create-batch --help
"""

from .cli import cli

__all__ = [
    'cli',  # Main CLI interface (Click command group)
]
