from rest_framework import serializers
from .models import User

class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'phone_number', 'role', 'is_blocked']
        read_only_fields = ['id', 'is_blocked']

class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'password', 'phone_number', 'role']

    def validate_role(self, value):
        # admins are created from the Django admin, not by self sign-up
        if value == User.Roles.ADMIN:
            raise serializers.ValidationError("Cannot self-register as admin.")
        return value

    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data['username'],
            password=validated_data['password'],
            phone_number=validated_data.get('phone_number'),
            role=validated_data.get('role', User.Roles.CLIENT)
        )
        if user.role == User.Roles.DRIVER:
            from logistics.models import Driver
            Driver.objects.create(user=user)
        return user
