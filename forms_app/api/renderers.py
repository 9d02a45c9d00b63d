from rest_framework.renderers import JSONRenderer


class OCSJSONRenderer(JSONRenderer):
    """Wrap every payload in the OCS envelope clients of the forms API unwrap.

    Success: {"ocs": {"meta": {...}, "data": <payload>}}. Failures keep any
    structured error fields in "data" and move "detail" into meta.message.
    """

    def render(self, data, accepted_media_type=None, renderer_context=None):
        renderer_context = renderer_context or {}
        response = renderer_context.get("response")
        status_code = response.status_code if response is not None else 200

        if status_code < 400:
            meta = {"status": "ok", "statuscode": status_code, "message": "OK"}
            payload = [] if data is None else data
        else:
            message = ""
            payload = data
            if isinstance(data, dict):
                if "detail" in data:
                    message = str(data["detail"])
                    payload = {k: v for k, v in data.items() if k != "detail"} or []
                elif "message" in data:
                    message = str(data["message"])
            meta = {"status": "failure", "statuscode": status_code, "message": message}

        envelope = {"ocs": {"meta": meta, "data": payload}}
        return super().render(envelope, accepted_media_type, renderer_context)
