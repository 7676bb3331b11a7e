from rest_framework import serializers


class RecordIdSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=128)


class CheckResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    error = serializers.CharField(allow_null=True, required=False)
    message = serializers.CharField(allow_blank=True, required=False)
    status = serializers.IntegerField(allow_null=True, required=False)
    size = serializers.IntegerField(required=False)

