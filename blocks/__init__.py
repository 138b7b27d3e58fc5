"""
blocks — integration targets exposed through ``/block/execute``.

  • strategies  — NativeStrategy / TemplatedStrategy
  • registry    — BlockDefinition and the closed BlockRegistry
  • dispatcher  — alias normalisation, execution, error translation
  • airtable, google_sheets, gmail — the block definitions
"""
