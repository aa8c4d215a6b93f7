from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.urls import reverse
from django.utils.html import format_html

from .models import Event, Message, Thread, User

# ==================== ADMIN CLASSES ====================

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('id', 'email', 'full_name', 'verified', 'is_locked', 'is_staff', 'created_at')
    list_filter = ('verified', 'is_locked', 'is_staff')
    search_fields = ('email', 'first_name', 'last_name')
    ordering = ('-created_at',)
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Convo', {'fields': ('emails', 'avatar', 'timezone', 'verified', 'is_locked',
                              'oauth_google_id', 'oauth_facebook_id', 'contacts')}),
    )
    filter_horizontal = ('contacts', 'groups', 'user_permissions')
    actions = ['lock_users', 'unlock_users']

    def lock_users(self, request, queryset):
        queryset.update(is_locked=True)
        self.message_user(request, f"{queryset.count()} users locked")
    lock_users.short_description = "Lock selected users"

    def unlock_users(self, request, queryset):
        queryset.update(is_locked=False)
        self.message_user(request, f"{queryset.count()} users unlocked")
    unlock_users.short_description = "Unlock selected users"


@admin.register(Thread)
class ThreadAdmin(admin.ModelAdmin):
    list_display = ('id', 'subject', 'owner_link', 'response_count', 'member_count', 'created_at')
    search_fields = ('subject', 'owner__email')

    def owner_link(self, obj):
        url = reverse("admin:convo_user_change", args=[obj.owner_id])
        return format_html('<a href="{}">{}</a>', url, obj.owner)
    owner_link.short_description = 'Owner'
    owner_link.admin_order_field = 'owner__email'

    def member_count(self, obj):
        return obj.users.count()
    member_count.short_description = 'Members'


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'owner', 'timestamp', 'member_count')
    list_filter = ('timestamp',)
    search_fields = ('name', 'address', 'owner__email')

    def member_count(self, obj):
        return obj.users.count()
    member_count.short_description = 'Members'


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'thread', 'event', 'timestamp', 'body_short')
    list_filter = ('timestamp',)
    search_fields = ('body', 'user__email')

    def body_short(self, obj):
        if obj.body:
            return obj.body[:50] + '...' if len(obj.body) > 50 else obj.body
        return "(photo)"
    body_short.short_description = 'Body'
