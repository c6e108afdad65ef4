"""User-facing flash messages."""

INVALID_REQUEST = "Invalid request."
EMAIL_NOT_FOUND = "Could not find that email address."
ACCOUNT_ALREADY_CONFIRMED = "Account already confirmed."
CONFIRMATION_EMAIL_SENT = "Confirmation email sent."
CONFIRMATION_NOT_SENT = "Confirmation token issued, but the email could not be sent."
INVALID_CONFIRMATION_TOKEN = "Invalid confirmation token."
CONFIRMATION_TOKEN_EXPIRED = "Confirmation token expired."
ACCOUNT_CONFIRMED = "User account confirmed successfully."
PROBLEM_CONFIRMING = "Problem confirming user account. Please contact the system administrator."
RESET_EMAIL_SENT = "Reset email sent. Check your email for a reset link."
MAILER_REQUIRED = "A reset token was issued but the email could not be sent. Please try again later."
INVALID_RESET_TOKEN = "Invalid reset token."
RESET_TOKEN_EXPIRED = "Password reset token expired."
PASSWORD_UPDATED = "Password updated successfully."
INVALID_CREDENTIALS = "Incorrect email or password."
YOUR_ACCOUNT_NOT_LOCKED = "Your account is not locked."
UNLOCK_INSTRUCTIONS_SENT = "Unlock instructions sent. Check your email."
UNLOCK_NOT_SENT = "Unlock token issued, but the email could not be sent."
INVALID_UNLOCK_TOKEN = "Invalid unlock token."
ACCOUNT_UNLOCKED = "Your account has been unlocked."
ACCOUNT_NOT_LOCKED = "Account is not locked."
ACCOUNT_UPDATED = "Account updated successfully."
UPDATE_FAILED = "Something went wrong while updating users!"
EMAIL_TAKEN = "has already been taken"
INVALID_INVITATIONS = "Invitations must be a list of [name, email] pairs."
