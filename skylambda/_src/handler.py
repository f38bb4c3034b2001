"""Default function deployed by SkyLambda when no source is given."""
import json


def handler(event, context):
    return {
        'statusCode': 200,
        'body': json.dumps({'message': 'Hello from SkyLambda!'}),
    }
