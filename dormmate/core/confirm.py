class ConfirmationRequiredError(ValueError):
    pass


def require_confirmation(confirm: bool, what: str) -> None:
    if not confirm:
        raise ConfirmationRequiredError(f'Please confirm deleting this {what}.')
