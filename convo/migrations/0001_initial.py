import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
import pytz
from django.conf import settings
from django.db import migrations, models

import convo.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('emails', models.JSONField(blank=True, default=list, help_text='Verified email addresses')),
                ('avatar', models.URLField(blank=True, help_text='Avatar image URL', max_length=500)),
                ('token', models.CharField(default=convo.models.new_token, help_text='API token', max_length=64, unique=True)),
                ('oauth_google_id', models.CharField(blank=True, db_index=True, help_text='Linked Google account id', max_length=255)),
                ('oauth_facebook_id', models.CharField(blank=True, db_index=True, help_text='Linked Facebook account id', max_length=255)),
                ('verified', models.BooleanField(default=False, help_text='Primary email is verified')),
                ('is_locked', models.BooleanField(default=False, help_text='Locked pending email verification')),
                ('timezone', models.CharField(choices=[(tz, tz) for tz in pytz.all_timezones], default='UTC', help_text='Preferred timezone for dates in emails', max_length=100)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, help_text='Creation timestamp')),
                ('contacts', models.ManyToManyField(blank=True, help_text="Users in this user's contact list", related_name='contact_of', to=settings.AUTH_USER_MODEL)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'abstract': False,
            },
            managers=[
                ('objects', convo.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Thread',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reads', models.JSONField(blank=True, default=list, help_text='Per-user read markers')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, help_text='Creation timestamp')),
                ('subject', models.CharField(blank=True, help_text='Thread subject', max_length=255)),
                ('response_count', models.IntegerField(default=0, help_text='Number of messages in the thread')),
                ('owner', models.ForeignKey(help_text='User who created this container', on_delete=django.db.models.deletion.CASCADE, related_name='owned_threads', to=settings.AUTH_USER_MODEL)),
                ('users', models.ManyToManyField(blank=True, help_text='Members', related_name='threads', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reads', models.JSONField(blank=True, default=list, help_text='Per-user read markers')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, help_text='Creation timestamp')),
                ('name', models.CharField(help_text='Event name', max_length=255)),
                ('address', models.CharField(blank=True, help_text='Event address', max_length=500)),
                ('description', models.TextField(blank=True, help_text='Event description')),
                ('timestamp', models.DateTimeField(help_text='Start time')),
                ('owner', models.ForeignKey(help_text='User who created this container', on_delete=django.db.models.deletion.CASCADE, related_name='owned_events', to=settings.AUTH_USER_MODEL)),
                ('rsvps', models.ManyToManyField(blank=True, help_text="Guests who have RSVP'd", related_name='rsvped_events', to=settings.AUTH_USER_MODEL)),
                ('users', models.ManyToManyField(blank=True, help_text='Members', related_name='events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reads', models.JSONField(blank=True, default=list, help_text='Per-user read markers')),
                ('body', models.TextField(blank=True, help_text='Message text')),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Creation timestamp')),
                ('photo_keys', models.JSONField(blank=True, default=list, help_text='Storage keys of attached photos')),
                ('event', models.ForeignKey(blank=True, help_text='Parent event', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='convo.event')),
                ('thread', models.ForeignKey(blank=True, help_text='Parent thread', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='convo.thread')),
                ('user', models.ForeignKey(help_text='Author', on_delete=django.db.models.deletion.CASCADE, related_name='messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['timestamp', 'pk'],
            },
        ),
    ]
