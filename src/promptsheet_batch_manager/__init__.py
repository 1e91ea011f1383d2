"""
PromptSheet Batch Manager - LLM prompts over tabular rows

Applies templated prompts to the rows of a workbook (a folder of CSV
sheets), sends each rendered prompt to OpenAI or Azure OpenAI and writes
the JSON answer back as new "{prompt} - {key}" columns. Rows are either
processed synchronously or submitted through the Batch API, whose jobs
are tracked in the "Batch Status" sheet until their results are applied.

Workbook Layout:
    Data.csv          Rows to process, plus Status and Batch ID columns
    Prompts.csv       Prompt Name, Prompt Text, Model, Active
    Config.csv        Key/Value settings (API_KEY, DEFAULT_MODEL, DEBUG, BATCH_SIZE, ...)
    Batch Status.csv  Batch ledger
    Error Log.csv, Execution Log.csv, Cost Summary.csv

Example Usage:

    import promptsheet_batch_manager as psbm

    client = psbm.utils.clients.create_openai_client()
    manager = psbm.PromptSheetManager(client, './my_workbook/')

    # Synchronous
    manager.run(max_rows=10)

    # Batch
    manager.create_batch()
    manager.process_next()   # later, once the batch completed

CLI Usage:
    $ psbm -r sheet1 setup --workbook ./my_workbook/
    $ psbm -r sheet1 create-batch
    $ psbm -r sheet1 process-next

Environment Setup:
    - OPENAI_API_KEY (for OpenAI API), unless API_KEY is set in Config
    - AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT (for Azure OpenAI)

    These can be set via .env files in the current working directory or
    the project root (.env, .env.local).
"""

__version__ = "0.1.0"
__author__ = "Alvar"

# Load environment on package import
from .core.utils.environment import setup_environment
setup_environment()

from . import core
batching = core.batching
utils = core.utils
errors = core.errors
PromptSheetManager = core.PromptSheetManager

__all__ = [
    '__version__',
    '__author__',
    'batching',            # psbm.batching.*
    'utils',               # psbm.utils.*
    'errors',              # psbm.errors.*
    'PromptSheetManager',  # psbm.PromptSheetManager()
]

del setup_environment, core
