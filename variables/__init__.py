"""
Variable pool helpers: placeholder substitution, value typing and
copy-on-write commits.
"""
from variables.parse import parse_variables, extract_variables_from_text, safe_stringify
from variables.value_types import parse_guessed_value_type, is_leading_zero_number
from variables.session import commit_variable, update_variables_in_session
