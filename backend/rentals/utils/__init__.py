from .errors import error_response
from .json_utils import dumps
