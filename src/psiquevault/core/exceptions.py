"""
Exceptions for PsiqueVault
Everything derives from PsiqueVaultError so callers have one general error catcher
"""


class PsiqueVaultError(Exception):
    # general container for errors
    pass


class StorageError(PsiqueVaultError):
    # raised if the storage medium holds something it should not (bad salt, bad account list)
    pass


class StorageUnavailableError(StorageError):
    # raised when the storage medium cannot be read or written, fatal for the session
    pass


class AuthenticationError(PsiqueVaultError):
    # raised when an envelope fails tag verification: wrong key or tampered/corrupted data
    pass


class AccountError(PsiqueVaultError):
    # registry level failures
    pass


class DuplicateAccountError(AccountError):
    # raised when registering (or renaming to) an email that already exists
    pass


class UnknownAccountError(AccountError):
    # raised when the email is not in the registry
    pass


class InvalidCredentialsError(AccountError):
    # raised when the password does not match the stored hash
    pass


class InvalidPasswordError(AccountError):
    # raised when a new password does not satisfy the password policy
    pass


class AccessDeniedError(PsiqueVaultError):
    # raised when an account lacks the role for an operation
    pass


class SessionLockedError(PsiqueVaultError):
    # raised when an operation needs an unlocked session
    pass
