from .tokens import generate_transfer_token, validate_transfer_token
