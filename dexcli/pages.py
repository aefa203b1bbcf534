import html

_STYLE = """
            * {
                margin: 0;
                padding: 0;
                box-sizing: border-box;
            }

            body {
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
                background: #0b1020;
                color: #ffffff;
                min-height: 100vh;
                display: flex;
                align-items: center;
                justify-content: center;
            }

            .container {
                text-align: center;
                padding: 60px 40px;
                background: rgba(255, 255, 255, 0.05);
                border: 1px solid rgba(255, 255, 255, 0.1);
                border-radius: 16px;
                box-shadow: 0 8px 32px rgba(0, 0, 0, 0.3);
                max-width: 500px;
                width: 90%;
            }

            .icon {
                width: 80px;
                height: 80px;
                margin: 0 auto 30px;
                border-radius: 50%;
                display: flex;
                align-items: center;
                justify-content: center;
                font-size: 40px;
                font-weight: bold;
            }

            .icon.success {
                background: linear-gradient(135deg, #4A90E2 0%, #A74AE2 100%);
            }

            .icon.error {
                background: linear-gradient(135deg, #E24A4A 0%, #F02463 100%);
            }

            .title {
                font-size: 28px;
                font-weight: 500;
                margin-bottom: 16px;
            }

            .error-message {
                font-size: 16px;
                color: #F02463;
                margin-bottom: 16px;
                padding: 12px 20px;
                background: rgba(240, 36, 99, 0.1);
                border: 1px solid rgba(240, 36, 99, 0.2);
                border-radius: 8px;
                font-family: 'Courier New', monospace;
                word-break: break-word;
            }

            .message {
                font-size: 16px;
                color: rgba(255, 255, 255, 0.7);
                line-height: 1.6;
            }

            .cli-hint {
                margin-top: 40px;
                padding: 16px;
                background: rgba(255, 255, 255, 0.05);
                border: 1px solid rgba(255, 255, 255, 0.1);
                border-radius: 8px;
                font-family: 'Courier New', monospace;
                font-size: 14px;
                color: #4A90E2;
            }
"""

_SUCCESS_HTML = """<!doctype html>
<html>
<head>
    <meta charset="UTF-8">
    <title>dexcli - Login Successful</title>
    <style>%s</style>
</head>
<body>
    <div class="container">
        <div class="icon success">&#10003;</div>
        <h1 class="title">Login Successful</h1>
        <p class="message">
            You can safely close this browser window/tab.
        </p>
        <div class="cli-hint">Return to your terminal to continue</div>
    </div>
</body>
</html>
"""

_ERROR_HTML = """<!doctype html>
<html>
<head>
    <meta charset="UTF-8">
    <title>dexcli - Login Failed</title>
    <style>%s</style>
</head>
<body>
    <div class="container">
        <div class="icon error">&#10005;</div>
        <h1 class="title">Login Failed</h1>
        <div class="error-message">%s</div>
        <p class="message">
            The sign-in process encountered an error.<br>
            You can close this browser window/tab.
        </p>
        <div class="cli-hint">Run 'dexcli signin' to retry</div>
    </div>
</body>
</html>
"""


def successPage() -> bytes:
    return ( _SUCCESS_HTML % ( _STYLE, ) ).encode( 'utf-8' )


def errorPage( error_msg: str ) -> bytes:
    '''Render the failure page for a message, escaped for HTML.'''
    return ( _ERROR_HTML % ( _STYLE, html.escape( error_msg ) ) ).encode( 'utf-8' )
