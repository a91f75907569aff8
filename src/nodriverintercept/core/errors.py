class ResolutionConflictError(RuntimeError):
    """raised when a decision is issued for a request that no longer accepts one.

    either the request was already resolved (abort / fail / defer / fulfill
    already sent its command) or a handler called `continue_()` after the chain
    had already moved past it. nothing is sent to the browser in either case.

    :param request_id: id of the paused request.
    :param url: request url, for the message.
    :param reason: short description of the conflict.
    """

    def __init__(self, request_id: str, url: str, reason: str = "request already resolved"):
        self.request_id = request_id
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {request_id} <{url}>")
