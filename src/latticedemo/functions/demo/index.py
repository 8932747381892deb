import json


def handler(event, context):
    print(f"Received event: {json.dumps(event, default=str)}")
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({}),
    }
