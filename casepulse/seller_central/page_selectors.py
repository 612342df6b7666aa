# File: seller_central/page_selectors.py
# Seller Central / Amazon sign-in (ap/signin) selectors and text markers.

# Authenticated-only chrome
AUTHENTICATED_LANDMARKS = (
    "#sc-navbar, "
    "nav[data-test-id='navbar'], "
    "#sc-mkt-picker-switcher-select, "
    "[data-test-id='seller-central-dashboard'], "
    "#content > div > div.mainAppContainerExternal"
)

# Brand pages can render a trimmed navbar
BRAND_PAGE_LANDMARKS = "#sc-navbar, nav, [data-test-id='navbar']"

LOGIN_EMAIL = "input[type='email'], input[name='email'], input#ap_email"
LOGIN_CONTINUE = "input#continue, input[type='submit'], button[type='submit']"
LOGIN_PASSWORD = "input[type='password'], input[name='password'], input#ap_password"
LOGIN_SUBMIT = "input#signInSubmit, button[type='submit'], input[type='submit']"

OTP_INPUT = "input[name='otpCode'], input[name='code'], input#auth-mfa-otpcode"
OTP_REMEMBER_DEVICE = "input[name='rememberDevice']"
OTP_SUBMIT = "input#auth-signin-button, button[type='submit'], input[type='submit']"

CAPTCHA_IMAGE = "#auth-captcha-image, #captchacharacters"

# Body-text markers (matched lower-cased)
CAPTCHA_TEXT_MARKERS = (
    "enter the characters you see below",
    "solve this puzzle to protect your account",
)
TWO_FACTOR_TEXT_MARKERS = (
    "two-step verification",
    "enter otp",
    "authentication code",
)
FAILURE_TEXT_MARKERS = (
    "your password is incorrect",
    "password is incorrect",
    "cannot find an account",
    "incorrect code",
    "the code you entered is not valid",
    "there was a problem",
)
